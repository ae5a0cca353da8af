"""Delta detection between a source snapshot and the identity mapping."""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from shopsync.core.data_objects import DataObjectKind, SyncMode, kind_value

logger = logging.getLogger(__name__)

SyncItem = dict[str, Any]


class MappingReader(Protocol):
    def all_mappings(self, kind: DataObjectKind | str) -> dict[str, str]: ...


@dataclass
class UpdateItem:
    """A source item that already has a remote counterpart."""

    item: SyncItem
    external_id: str
    remote_id: str


@dataclass
class DeltaResult:
    to_create: list[SyncItem] = field(default_factory=list)
    to_update: list[UpdateItem] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    unchanged_count: int = 0

    @property
    def total(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.to_delete)

    def summary(self) -> str:
        return (
            f"{len(self.to_create)} to create, {len(self.to_update)} to update, "
            f"{len(self.to_delete)} to delete"
        )


def detect_deltas(
    kind: DataObjectKind | str,
    source_items: list[SyncItem],
    external_id_of: Callable[[SyncItem], str],
    mode: SyncMode,
    mapping_store: MappingReader,
) -> DeltaResult:
    """Split a source snapshot into creates, updates and deletes.

    Mapped items become updates, unmapped items creates. Under
    ``SyncMode.SYNC`` every mapped external id missing from the snapshot is
    a delete. Pure read of the mapping store; ``unchanged_count`` is always 0,
    content comparison is left to the handler.
    """
    managed = mapping_store.all_mappings(kind)
    result = DeltaResult()
    seen: set[str] = set()

    for item in source_items:
        external_id = external_id_of(item)
        seen.add(external_id)
        remote_id = managed.get(external_id)
        if remote_id is None:
            result.to_create.append(item)
        else:
            result.to_update.append(UpdateItem(item, external_id, remote_id))

    if SyncMode(mode) == SyncMode.SYNC:
        result.to_delete = [external_id for external_id in managed if external_id not in seen]

    logger.debug(f"{kind_value(kind)} delta: {result.summary()}")
    return result


def shallow_equal(a: SyncItem, b: SyncItem, keys: Iterable[str] | None = None) -> bool:
    """Compare two records field by field (string-normalized)."""
    fields = list(keys) if keys is not None else set(a) | set(b)
    return all(_normalize(a.get(k)) == _normalize(b.get(k)) for k in fields)


def get_differences(
    source: SyncItem,
    dest: SyncItem,
    keys: Iterable[str] | None = None,
) -> dict[str, tuple[Any, Any]]:
    """Fields whose values differ, as ``{field: (source, dest)}``."""
    fields = list(keys) if keys is not None else sorted(set(source) | set(dest))
    return {
        k: (source.get(k), dest.get(k))
        for k in fields
        if _normalize(source.get(k)) != _normalize(dest.get(k))
    }


def deduplicate_by_external_id(
    items: list[SyncItem],
    external_id_of: Callable[[SyncItem], str],
) -> list[SyncItem]:
    """Drop repeated external ids, keeping the last occurrence."""
    last: dict[str, int] = {}
    for index, item in enumerate(items):
        last[external_id_of(item)] = index
    kept = [item for index, item in enumerate(items) if last[external_id_of(item)] == index]
    if len(kept) != len(items):
        logger.warning(f"Dropped {len(items) - len(kept)} duplicate source rows")
    return kept


def batch_items(items: list[Any], size: int) -> Iterator[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _normalize(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return str(value).strip()
