"""Per data object sync state."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import Mapped

from shopsync.core.database import Base


class SyncState(Base):
    """Last run bookkeeping for one data object kind."""

    __tablename__ = "sync_states"

    kind: Mapped[str] = Column(String(50), primary_key=True)
    status: Mapped[str] = Column(
        String(20), nullable=False, default="idle"
    )  # idle, running, failed
    last_sync_at: Mapped[datetime | None] = Column(DateTime, nullable=True)
    last_success_at: Mapped[datetime | None] = Column(DateTime, nullable=True)
    cursor: Mapped[str | None] = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncState {self.kind}: {self.status}>"
