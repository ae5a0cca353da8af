"""Fixtures for API tests: an engine with stub handlers behind a TestClient."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from shopsync.core.data_objects import DataObjectKind
from shopsync.core.engine import build_engine
from shopsync.core.sync.lifecycle import HandlerState, SyncStats
from shopsync.main import create_app


class StubHandler:
    def __init__(self):
        self.state = HandlerState.IDLE
        self.run = AsyncMock(return_value=SyncStats())


@pytest.fixture
def scheduler_backend():
    backend = MagicMock()
    backend.running = False
    backend.get_jobs.return_value = []
    return backend


@pytest.fixture
def engine(settings, data_objects, session_factory, scheduler_backend):
    return build_engine(
        settings,
        data_objects,
        session_factory,
        handlers={kind: StubHandler() for kind in DataObjectKind},
        scheduler_backend=scheduler_backend,
    )


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client
