"""Handler lifecycle shared by push and pull handlers.

``run_lifecycle`` wraps one job in SyncState/JobLog bookkeeping and
``process_batch`` fans work out over items in bounded chunks. Both are
plain functions composed by the handlers rather than inherited.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Protocol, TypeVar

from shopsync.api.services.job_log_service import JobLogService
from shopsync.api.services.mapping_store import IdMappingStore
from shopsync.api.services.sync_state_store import SyncStateStore
from shopsync.api.services.webhook_event_store import WebhookEventStore
from shopsync.core.exceptions import JobExecutionError
from shopsync.core.queue import Job, JobType
from shopsync.core.sync.delta import batch_items

logger = logging.getLogger(__name__)

T = TypeVar("T")

ItemAction = Literal["created", "updated", "deleted", "unchanged", "skipped"]


class HandlerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ItemResult:
    """Outcome of syncing one record."""

    success: bool
    action: ItemAction
    external_id: str
    remote_id: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, external_id: str, error: str, action: ItemAction = "skipped") -> "ItemResult":
        return cls(success=False, action=action, external_id=external_id, error=error)


@dataclass
class SyncStats:
    """Counts for one job. ``processed == succeeded + failed``."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    unchanged: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    cursor: str | None = None
    errors: list[str] = field(default_factory=list, repr=False)

    def record(self, result: ItemResult) -> None:
        self.processed += 1
        if not result.success:
            self.failed += 1
            self.errors.append(f"{result.external_id}: {result.error}")
            return
        self.succeeded += 1
        if result.action == "created":
            self.created += 1
        elif result.action == "updated":
            self.updated += 1
        elif result.action == "deleted":
            self.deleted += 1
        elif result.action == "unchanged":
            self.unchanged += 1

    def __add__(self, other: "SyncStats") -> "SyncStats":
        return SyncStats(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            unchanged=self.unchanged + other.unchanged,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
            cursor=other.cursor or self.cursor,
            errors=self.errors + other.errors,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "unchanged": self.unchanged,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
        }


@dataclass
class HandlerContext:
    """Stores a handler needs, injected by the engine."""

    mappings: IdMappingStore
    states: SyncStateStore
    job_logs: JobLogService
    webhook_events: WebhookEventStore
    batch_size: int = 10


class SyncHandler(Protocol):
    """Anything the queue can run for a data object kind."""

    state: HandlerState

    async def run(self, job: Job) -> SyncStats: ...


def _default_external_id(item: Any) -> str:
    if isinstance(item, str):
        return item
    return str(getattr(item, "external_id", "") or "")


async def process_batch(
    items: Sequence[T],
    processor: Callable[[T], Awaitable[ItemResult]],
    batch_size: int = 10,
    external_id_of: Callable[[T], str] = _default_external_id,
    label: str = "items",
) -> SyncStats:
    """Run ``processor`` over ``items`` in gathered chunks of ``batch_size``.

    An exception raised for one item becomes a failed ItemResult; it never
    aborts the rest of the batch.
    """
    stats = SyncStats()

    async def guarded(item: T) -> ItemResult:
        try:
            return await processor(item)
        except Exception as e:
            external_id = external_id_of(item)
            logger.warning(f"Failed to process {label} item {external_id!r}: {e}")
            return ItemResult.failed(external_id, str(e) or type(e).__name__)

    for chunk in batch_items(list(items), batch_size):
        for result in await asyncio.gather(*(guarded(item) for item in chunk)):
            stats.record(result)

    return stats


async def run_lifecycle(
    context: HandlerContext,
    job: Job,
    work: Callable[[], Awaitable[SyncStats]],
    handler: Any = None,
) -> SyncStats:
    """Run ``work`` for ``job`` with state and log transitions.

    Sync jobs move SyncState running -> idle (or failed); webhook jobs only
    touch the job log. Any exception marks the job failed and is re-raised
    as JobExecutionError.
    """
    kind = job.kind
    tracks_state = job.job_type == JobType.SYNC

    log_id = context.job_logs.create(kind, job.job_type.value)
    if tracks_state:
        context.states.mark_started(kind)
    context.job_logs.mark_started(log_id)
    if handler is not None:
        handler.state = HandlerState.RUNNING

    started = time.perf_counter()
    try:
        stats = await work()
    except Exception as e:
        message = str(e) or type(e).__name__
        if tracks_state:
            context.states.mark_failed(kind)
        context.job_logs.mark_failed(log_id, message)
        if handler is not None:
            handler.state = HandlerState.FAILED
        logger.error(f"{kind.value} {job.job_type.value} job {job.id} failed: {message}")
        raise JobExecutionError(kind.value, job.id, message) from e

    if tracks_state:
        context.states.mark_completed(kind, cursor=stats.cursor)
    context.job_logs.mark_completed(log_id, stats)
    if handler is not None:
        handler.state = HandlerState.COMPLETED

    elapsed = time.perf_counter() - started
    logger.info(
        f"{kind.value} {job.job_type.value} finished in {elapsed:.2f}s: "
        f"{stats.processed} processed, {stats.succeeded} succeeded, "
        f"{stats.failed} failed, {stats.unchanged} unchanged"
    )
    if stats.failed:
        for error in stats.errors[:10]:
            logger.warning(f"{kind.value}: {error}")
    return stats
