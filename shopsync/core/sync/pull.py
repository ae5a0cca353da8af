"""Pull handler: remote webhook events -> source sheet."""

import logging
from typing import Any, Protocol

from shopsync.core.data_objects import DataObjectConfig, DataObjectKind
from shopsync.core.queue import Job, JobType
from shopsync.core.sync.delta import SyncItem
from shopsync.core.sync.lifecycle import (
    HandlerContext,
    HandlerState,
    ItemResult,
    SyncStats,
    process_batch,
    run_lifecycle,
)

logger = logging.getLogger(__name__)


class PullAdapter(Protocol):
    """Kind-specific transformation used by PullHandler."""

    def external_id_of(self, row: SyncItem) -> str: ...

    def transform(self, data: dict[str, Any], remote_id: str | None) -> SyncItem: ...

    async def upsert_source(self, row: SyncItem) -> bool: ...


class PullHandler:
    """Writes remote records delivered by webhooks into the source sheet.

    Scheduled syncs are no-ops. A webhook job processes its own event and
    then drains any other unprocessed events for the kind's topics, which
    covers deliveries that arrived while the job was queued or running.
    """

    def __init__(
        self,
        kind: DataObjectKind,
        config: DataObjectConfig,
        adapter: PullAdapter,
        context: HandlerContext,
    ):
        self.kind = kind
        self.config = config
        self.adapter = adapter
        self.context = context
        self.state = HandlerState.IDLE

    async def run(self, job: Job) -> SyncStats:
        if job.job_type == JobType.SYNC:
            return await run_lifecycle(self.context, job, self.sync, handler=self)

        async def work() -> SyncStats:
            return await self.process_events(job.payload or {})

        return await run_lifecycle(self.context, job, work, handler=self)

    async def sync(self) -> SyncStats:
        logger.debug(f"{self.kind.value} is webhook driven, nothing to pull on schedule")
        return SyncStats()

    async def process_events(self, payload: dict[str, Any]) -> SyncStats:
        """Apply ``payload`` and every pending event, until no new one shows up.

        Deliveries that arrive while this job runs are deduplicated into it
        by the queue, so the pending set is re-read after each pass. Events
        that fail stay pending for the next webhook job and are not retried
        within this one.
        """
        stats = SyncStats()
        seen: set[int] = set()
        events = [payload] if payload else []
        if payload.get("event_id") is not None:
            seen.add(payload["event_id"])

        while True:
            for event in self.context.webhook_events.unprocessed(self.config.webhook_topics):
                if event["event_id"] not in seen:
                    events.append(event)
                    seen.add(event["event_id"])
            # nothing awaits between this empty read and the job finishing
            if not events:
                return stats

            # one at a time so repeated events for a record apply in order
            stats += await process_batch(
                events,
                self.process_webhook,
                batch_size=1,
                external_id_of=lambda event: str(event.get("remote_id") or event.get("event_id")),
                label=self.kind.value,
            )
            events = []

    async def process_webhook(self, event: dict[str, Any]) -> ItemResult:
        """Apply one webhook event to the source sheet."""
        data = event.get("data") or {}
        row = self.adapter.transform(data, event.get("remote_id"))
        external_id = self.adapter.external_id_of(row)
        if not external_id:
            return ItemResult.failed(
                str(event.get("remote_id") or "unknown"),
                f"Missing {self.config.external_id_field} in {event.get('topic')} payload",
            )

        remote_id = row.get("shopify_id") or event.get("remote_id")
        created = await self.adapter.upsert_source(row)
        if remote_id:
            self.context.mappings.upsert(self.kind, external_id, remote_id)
        if event.get("event_id") is not None:
            self.context.webhook_events.mark_processed(event["event_id"])

        action = "created" if created else "updated"
        logger.info(f"{self.kind.value} {external_id} {action} from {event.get('topic')}")
        return ItemResult(True, action, external_id, remote_id)
