"""Durable identity mapping store.

Maps ``(kind, external_id)`` to ``remote_id`` and back. Every call runs in
its own transaction.
"""

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from shopsync.core.data_objects import DataObjectKind, kind_value
from shopsync.core.database import SessionLocal, session_scope
from shopsync.core.exceptions import MappingConflictError
from shopsync.models.id_mapping import IdMapping

logger = logging.getLogger(__name__)


class IdMappingStore:
    """Bijective external id <-> remote id store, one namespace per kind."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def lookup_by_external_id(self, kind: DataObjectKind | str, external_id: str) -> str | None:
        with session_scope(self._session_factory) as db:
            return db.scalar(
                select(IdMapping.remote_id).where(
                    IdMapping.kind == kind_value(kind),
                    IdMapping.external_id == external_id,
                )
            )

    def lookup_by_remote_id(self, kind: DataObjectKind | str, remote_id: str) -> str | None:
        with session_scope(self._session_factory) as db:
            return db.scalar(
                select(IdMapping.external_id).where(
                    IdMapping.kind == kind_value(kind),
                    IdMapping.remote_id == remote_id,
                )
            )

    def is_managed(self, kind: DataObjectKind | str, external_id: str) -> bool:
        return self.lookup_by_external_id(kind, external_id) is not None

    def upsert(self, kind: DataObjectKind | str, external_id: str, remote_id: str) -> None:
        """Create or repoint the mapping for ``external_id``.

        Raises:
            MappingConflictError: If ``remote_id`` already belongs to another
                external id of the same kind
        """
        name = kind_value(kind)
        try:
            with session_scope(self._session_factory) as db:
                owner = db.scalar(
                    select(IdMapping).where(
                        IdMapping.kind == name, IdMapping.remote_id == remote_id
                    )
                )
                if owner is not None and owner.external_id != external_id:
                    raise MappingConflictError(name, external_id, remote_id, owner.external_id)
                if owner is not None:
                    return

                mapping = db.scalar(
                    select(IdMapping).where(
                        IdMapping.kind == name, IdMapping.external_id == external_id
                    )
                )
                if mapping is None:
                    db.add(IdMapping(kind=name, external_id=external_id, remote_id=remote_id))
                    logger.debug(f"Mapped {name}:{external_id} -> {remote_id}")
                else:
                    logger.info(
                        f"Remapped {name}:{external_id} from {mapping.remote_id} to {remote_id}"
                    )
                    mapping.remote_id = remote_id
        except IntegrityError as e:
            # lost a race with a concurrent writer for the same remote id
            owner = self.lookup_by_remote_id(name, remote_id) or "unknown"
            raise MappingConflictError(name, external_id, remote_id, owner) from e

    def delete(self, kind: DataObjectKind | str, external_id: str) -> None:
        with session_scope(self._session_factory) as db:
            db.execute(
                delete(IdMapping).where(
                    IdMapping.kind == kind_value(kind),
                    IdMapping.external_id == external_id,
                )
            )

    def all_mappings(self, kind: DataObjectKind | str) -> dict[str, str]:
        """Every mapping of ``kind``, in insertion order."""
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(IdMapping.external_id, IdMapping.remote_id)
                .where(IdMapping.kind == kind_value(kind))
                .order_by(IdMapping.id)
            ).all()
        return {external_id: remote_id for external_id, remote_id in rows}

    def batch_lookup(
        self, kind: DataObjectKind | str, external_ids: Iterable[str]
    ) -> dict[str, str | None]:
        """Remote id (or None) for each external id."""
        ids = list(external_ids)
        if not ids:
            return {}
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(IdMapping.external_id, IdMapping.remote_id).where(
                    IdMapping.kind == kind_value(kind),
                    IdMapping.external_id.in_(ids),
                )
            ).all()
        found = dict(rows)
        return {external_id: found.get(external_id) for external_id in ids}

    def count(self, kind: DataObjectKind | str | None = None) -> int:
        with session_scope(self._session_factory) as db:
            query = db.query(IdMapping)
            if kind is not None:
                query = query.filter(IdMapping.kind == kind_value(kind))
            return query.count()

    def reset(self, kind: DataObjectKind | str | None = None) -> int:
        """Forget every mapping, or every mapping of ``kind``."""
        with session_scope(self._session_factory) as db:
            statement = delete(IdMapping)
            if kind is not None:
                statement = statement.where(IdMapping.kind == kind_value(kind))
            removed = db.execute(statement).rowcount
        logger.info(f"Removed {removed} id mappings")
        return removed
