"""Identity mapping between source records and remote records."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped

from shopsync.core.database import Base, utcnow


class IdMapping(Base):
    """One source record (``external_id``) paired with one remote record.

    Both sides are unique per kind, so the table is a bijection.
    """

    __tablename__ = "id_mappings"
    __table_args__ = (
        UniqueConstraint("kind", "external_id", name="uq_id_mappings_external"),
        UniqueConstraint("kind", "remote_id", name="uq_id_mappings_remote"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = Column(String(50), nullable=False, index=True)
    external_id: Mapped[str] = Column(String(255), nullable=False)
    remote_id: Mapped[str] = Column(String(255), nullable=False)
    created_at: Mapped[datetime] = Column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = Column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<IdMapping {self.kind}: {self.external_id} -> {self.remote_id}>"
