"""Raw inbound webhook events."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped

from shopsync.core.database import Base, utcnow


class WebhookEvent(Base):
    """A verified webhook delivery, kept until cleanup."""

    __tablename__ = "webhook_events"

    id: Mapped[int] = Column(Integer, primary_key=True, autoincrement=True)
    topic: Mapped[str] = Column(String(100), nullable=False, index=True)
    remote_id: Mapped[str | None] = Column(String(255), nullable=True)
    payload: Mapped[str] = Column(Text, nullable=False)  # JSON body
    processed: Mapped[bool] = Column(Boolean, default=False, nullable=False, index=True)
    processed_at: Mapped[datetime | None] = Column(DateTime, nullable=True)
    created_at: Mapped[datetime] = Column(
        DateTime, default=utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<WebhookEvent {self.id} {self.topic}: processed={self.processed}>"
