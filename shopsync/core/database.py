"""SQLite database configuration and session management.

Features:
- Engine factory shared by the application and the test suite
- Slow query logging
- Transactional session scope for background jobs
"""

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from shopsync.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with SQLite-specific tuning.

    In-memory SQLite URLs share a single connection so every session sees
    the same database.
    """
    engine_args: dict[str, Any] = {"echo": echo}

    if database_url.startswith("sqlite"):
        engine_args["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            engine_args["poolclass"] = StaticPool
        else:
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    else:
        engine_args.update({
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,
        })

    db_engine = create_engine(database_url, **engine_args)

    @event.listens_for(db_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(db_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Log slow queries based on configured threshold."""
        total_time = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000
        if total_time > settings.slow_query_threshold_ms:
            logger.warning(f"Slow query detected ({total_time:.2f}ms): {statement[:200]}...")

    if database_url.startswith("sqlite"):
        @event.listens_for(db_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Set SQLite pragmas for performance."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return db_engine


engine = create_db_engine(
    settings.database_url,
    echo=settings.debug and settings.enable_query_logging,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """Transactional session: commit on success, rollback on error."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Initialize database tables."""
    # Import models to register them with Base
    from shopsync import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def reset_db(bind: Engine | None = None) -> None:
    """Drop and recreate engine tables (demo mode)."""
    from shopsync import models  # noqa: F401

    target = bind or engine
    Base.metadata.drop_all(bind=target)
    Base.metadata.create_all(bind=target)
    logger.info("Database reset")


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every table."""
    return datetime.now(UTC).replace(tzinfo=None)
