"""Job log service for handler executions."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import sessionmaker

from shopsync.core.data_objects import DataObjectKind, kind_value
from shopsync.core.database import SessionLocal, session_scope, utcnow
from shopsync.models.job_log import JobLog

if TYPE_CHECKING:
    from shopsync.core.sync.lifecycle import SyncStats

logger = logging.getLogger(__name__)


class JobLogService:
    """Records one JobLog row per executed handler job."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def create(self, kind: DataObjectKind | str, job_type: str) -> int:
        """Create a queued log entry.

        Returns:
            The id of the new JobLog row
        """
        with session_scope(self._session_factory) as db:
            entry = JobLog(kind=kind_value(kind), job_type=job_type, status="queued")
            db.add(entry)
            db.flush()
            return entry.id

    def mark_started(self, log_id: int) -> None:
        with session_scope(self._session_factory) as db:
            entry = self._get(db, log_id)
            entry.status = "running"
            entry.started_at = utcnow()

    def mark_completed(self, log_id: int, stats: "SyncStats") -> None:
        """Mark a job completed and store its final counts."""
        with session_scope(self._session_factory) as db:
            entry = self._get(db, log_id)
            entry.status = "completed"
            entry.completed_at = utcnow()
            entry.items_processed = stats.processed
            entry.items_succeeded = stats.succeeded
            entry.items_failed = stats.failed

    def mark_failed(self, log_id: int, error_message: str) -> None:
        with session_scope(self._session_factory) as db:
            entry = self._get(db, log_id)
            entry.status = "failed"
            entry.completed_at = utcnow()
            entry.error_message = error_message

    def recent(self, kind: DataObjectKind | str | None = None, limit: int = 10) -> list[dict]:
        """Most recent log entries, newest first."""
        with session_scope(self._session_factory) as db:
            query = db.query(JobLog)
            if kind is not None:
                query = query.filter(JobLog.kind == kind_value(kind))
            entries = query.order_by(JobLog.created_at.desc(), JobLog.id.desc()).limit(limit).all()
            return [
                {
                    "id": e.id,
                    "kind": e.kind,
                    "job_type": e.job_type,
                    "status": e.status,
                    "items_processed": e.items_processed,
                    "items_succeeded": e.items_succeeded,
                    "items_failed": e.items_failed,
                    "error_message": e.error_message,
                    "started_at": e.started_at.isoformat() if e.started_at else None,
                    "completed_at": e.completed_at.isoformat() if e.completed_at else None,
                    "duration_ms": e.duration_ms,
                }
                for e in entries
            ]

    @staticmethod
    def _get(db, log_id: int) -> JobLog:
        entry = db.get(JobLog, log_id)
        if entry is None:
            raise ValueError(f"Job log with id {log_id} not found")
        return entry
