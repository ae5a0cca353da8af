"""Execution log for handler jobs."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped

from shopsync.core.database import Base, utcnow


class JobLog(Base):
    """Log entry for each handler job execution."""

    __tablename__ = "job_logs"

    id: Mapped[int] = Column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = Column(String(50), nullable=False, index=True)
    job_type: Mapped[str] = Column(String(20), nullable=False)  # sync, webhook
    status: Mapped[str] = Column(
        String(20), nullable=False, default="queued"
    )  # queued, running, completed, failed
    items_processed: Mapped[int] = Column(Integer, default=0)
    items_succeeded: Mapped[int] = Column(Integer, default=0)
    items_failed: Mapped[int] = Column(Integer, default=0)
    error_message: Mapped[str | None] = Column(Text, nullable=True)
    started_at: Mapped[datetime | None] = Column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = Column(DateTime, nullable=True)
    created_at: Mapped[datetime] = Column(
        DateTime, default=utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<JobLog {self.kind}/{self.job_type}: {self.status}>"

    @property
    def duration_ms(self) -> int | None:
        """Job duration in milliseconds."""
        if self.completed_at and self.started_at:
            return int((self.completed_at - self.started_at).total_seconds() * 1000)
        return None
