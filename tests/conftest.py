"""Shared fixtures."""

import os

# Must be set before shopsync modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SYNC_MODE", "demo")
os.environ.pop("WEBHOOK_SECRET", None)

import pytest
from sqlalchemy.orm import sessionmaker

from shopsync.api.services.job_log_service import JobLogService
from shopsync.api.services.mapping_store import IdMappingStore
from shopsync.api.services.sync_state_store import SyncStateStore
from shopsync.api.services.webhook_event_store import WebhookEventStore
from shopsync.core.config import Settings
from shopsync.core.data_objects import load_data_objects
from shopsync.core.database import Base, create_db_engine
from shopsync.core.sync.lifecycle import HandlerContext
from shopsync import models  # noqa: F401


@pytest.fixture
def db_engine():
    """Fresh in-memory database per test."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def mapping_store(session_factory):
    return IdMappingStore(session_factory)


@pytest.fixture
def state_store(session_factory):
    return SyncStateStore(session_factory)


@pytest.fixture
def job_log_service(session_factory):
    return JobLogService(session_factory)


@pytest.fixture
def webhook_store(session_factory):
    return WebhookEventStore(session_factory)


@pytest.fixture
def handler_context(mapping_store, state_store, job_log_service, webhook_store):
    return HandlerContext(
        mappings=mapping_store,
        states=state_store,
        job_logs=job_log_service,
        webhook_events=webhook_store,
        batch_size=10,
    )


@pytest.fixture
def settings():
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        run_mode="demo",
        webhook_secret="test-secret",
        heartbeat_interval_seconds=60,
        stuck_threshold_seconds=600,
    )


@pytest.fixture
def data_objects():
    return load_data_objects()
