"""Per data object sync state store."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from shopsync.core.data_objects import DataObjectKind, kind_value
from shopsync.core.database import SessionLocal, session_scope, utcnow
from shopsync.models.sync_state import SyncState

logger = logging.getLogger(__name__)


@dataclass
class SyncStateData:
    """Detached snapshot of a SyncState row."""

    kind: str
    status: str
    last_sync_at: datetime | None
    last_success_at: datetime | None
    cursor: str | None

    @classmethod
    def from_model(cls, row: SyncState) -> "SyncStateData":
        return cls(
            kind=row.kind,
            status=row.status,
            last_sync_at=row.last_sync_at,
            last_success_at=row.last_success_at,
            cursor=row.cursor,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "status": self.status,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "cursor": self.cursor,
        }


class SyncStateStore:
    """Reads and transitions the SyncState row of each kind."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def _get_or_create(self, db: Session, kind: DataObjectKind | str) -> SyncState:
        name = kind_value(kind)
        row = db.get(SyncState, name)
        if row is None:
            row = SyncState(kind=name, status="idle")
            db.add(row)
            db.flush()
        return row

    def get(self, kind: DataObjectKind | str) -> SyncStateData:
        """Current state, creating an idle row on first access."""
        with session_scope(self._session_factory) as db:
            return SyncStateData.from_model(self._get_or_create(db, kind))

    def mark_started(self, kind: DataObjectKind | str) -> None:
        with session_scope(self._session_factory) as db:
            row = self._get_or_create(db, kind)
            row.status = "running"
            row.last_sync_at = utcnow()

    def mark_completed(self, kind: DataObjectKind | str, cursor: str | None = None) -> None:
        with session_scope(self._session_factory) as db:
            row = self._get_or_create(db, kind)
            row.status = "idle"
            row.last_success_at = utcnow()
            if cursor is not None:
                row.cursor = cursor

    def mark_failed(self, kind: DataObjectKind | str) -> None:
        with session_scope(self._session_factory) as db:
            self._get_or_create(db, kind).status = "failed"

    def is_running(self, kind: DataObjectKind | str) -> bool:
        return self.get(kind).status == "running"

    def all_states(self) -> list[SyncStateData]:
        with session_scope(self._session_factory) as db:
            rows = db.query(SyncState).order_by(SyncState.kind).all()
            return [SyncStateData.from_model(row) for row in rows]
