"""Push handler: source snapshot -> remote store."""

import logging
from typing import Protocol

from shopsync.core.data_objects import DataObjectConfig, DataObjectKind
from shopsync.core.queue import Job, JobType
from shopsync.core.sync.delta import (
    SyncItem,
    UpdateItem,
    deduplicate_by_external_id,
    detect_deltas,
)
from shopsync.core.sync.lifecycle import (
    HandlerContext,
    HandlerState,
    ItemResult,
    SyncStats,
    process_batch,
    run_lifecycle,
)
from shopsync.core.sync.policy import should_adopt, should_archive_orphans

logger = logging.getLogger(__name__)


class PushAdapter(Protocol):
    """Kind-specific remote operations used by PushHandler."""

    supports_delete: bool

    def external_id_of(self, item: SyncItem) -> str: ...

    async def read_source(self) -> list[SyncItem]: ...

    async def find_existing(self, item: SyncItem) -> str | None: ...

    async def adopt(self, remote_id: str, item: SyncItem) -> None: ...

    async def create_remote(self, item: SyncItem) -> str: ...

    async def is_unchanged(self, remote_id: str, item: SyncItem) -> bool: ...

    async def update_remote(self, remote_id: str, item: SyncItem) -> None: ...

    async def delete_remote(self, remote_id: str) -> None: ...

    async def archive_remote(self, remote_id: str) -> None: ...

    async def write_back(self, item: SyncItem, remote_id: str) -> None: ...


class PushHandler:
    """Mirrors source rows into the remote store.

    Creates unmapped rows (adopting a matching remote record when the policy
    allows), updates mapped rows whose content differs and, in ``sync``
    mode, deletes or archives remote records whose row disappeared.
    """

    def __init__(
        self,
        kind: DataObjectKind,
        config: DataObjectConfig,
        adapter: PushAdapter,
        context: HandlerContext,
    ):
        self.kind = kind
        self.config = config
        self.adapter = adapter
        self.context = context
        self.state = HandlerState.IDLE

    async def run(self, job: Job) -> SyncStats:
        if job.job_type == JobType.WEBHOOK:
            # the source is authoritative for push kinds
            logger.info(f"Ignoring webhook for push kind {self.kind.value}")
            return SyncStats()
        return await run_lifecycle(self.context, job, self.sync, handler=self)

    async def sync(self) -> SyncStats:
        items = await self.adapter.read_source()
        logger.info(f"Read {len(items)} {self.kind.value} rows from {self.config.sheet_name}")

        stats = SyncStats()
        valid: list[SyncItem] = []
        for item in items:
            if self.adapter.external_id_of(item):
                valid.append(item)
            else:
                row = item.get("row_index", "?")
                stats.record(ItemResult.failed(
                    f"row {row}", f"Missing {self.config.external_id_field}"
                ))

        valid = deduplicate_by_external_id(valid, self.adapter.external_id_of)
        delta = detect_deltas(
            self.kind, valid, self.adapter.external_id_of, self.config.mode, self.context.mappings
        )
        logger.info(f"{self.kind.value}: {delta.summary()}")

        batch_size = self.context.batch_size
        stats += await process_batch(
            delta.to_create, self._create, batch_size,
            external_id_of=self.adapter.external_id_of, label=self.kind.value,
        )
        stats += await process_batch(
            delta.to_update, self._update, batch_size, label=self.kind.value,
        )
        stats += await process_batch(
            delta.to_delete, self._delete, batch_size, label=self.kind.value,
        )
        return stats

    async def _create(self, item: SyncItem) -> ItemResult:
        external_id = self.adapter.external_id_of(item)

        if should_adopt(self.config.existing_data_behavior):
            remote_id = await self.adapter.find_existing(item)
            if remote_id:
                self.context.mappings.upsert(self.kind, external_id, remote_id)
                await self.adapter.adopt(remote_id, item)
                await self.adapter.write_back(item, remote_id)
                logger.info(f"Adopted existing {self.kind.value} {external_id} -> {remote_id}")
                return ItemResult(True, "created", external_id, remote_id)

        remote_id = await self.adapter.create_remote(item)
        self.context.mappings.upsert(self.kind, external_id, remote_id)
        await self.adapter.write_back(item, remote_id)
        return ItemResult(True, "created", external_id, remote_id)

    async def _update(self, update: UpdateItem) -> ItemResult:
        if await self.adapter.is_unchanged(update.remote_id, update.item):
            return ItemResult(True, "unchanged", update.external_id, update.remote_id)
        await self.adapter.update_remote(update.remote_id, update.item)
        return ItemResult(True, "updated", update.external_id, update.remote_id)

    async def _delete(self, external_id: str) -> ItemResult:
        remote_id = self.context.mappings.lookup_by_external_id(self.kind, external_id)
        if remote_id is None:
            return ItemResult(True, "skipped", external_id)
        if not self.adapter.supports_delete:
            return ItemResult(True, "skipped", external_id, remote_id)

        if should_archive_orphans(self.config.existing_data_behavior):
            await self.adapter.archive_remote(remote_id)
        else:
            await self.adapter.delete_remote(remote_id)
        self.context.mappings.delete(self.kind, external_id)
        return ItemResult(True, "deleted", external_id, remote_id)
