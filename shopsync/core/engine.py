"""Engine wiring.

Builds the queue, scheduler, stores and handlers once and passes them
around explicitly; nothing here is a module-level singleton.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import sessionmaker

from shopsync.api.services.job_log_service import JobLogService
from shopsync.api.services.mapping_store import IdMappingStore
from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.api.services.sync_state_store import SyncStateStore
from shopsync.api.services.webhook_event_store import WebhookEventStore
from shopsync.core.config import Settings, get_settings
from shopsync.core.data_objects import DataObjectKind, DataObjectsConfig, load_data_objects
from shopsync.core.database import SessionLocal
from shopsync.core.queue import JobQueue
from shopsync.core.scheduler import Scheduler
from shopsync.core.sync import build_handlers
from shopsync.core.sync.lifecycle import HandlerContext, SyncHandler

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    settings: Settings
    data_objects: DataObjectsConfig
    queue: JobQueue
    scheduler: Scheduler
    mappings: IdMappingStore
    states: SyncStateStore
    job_logs: JobLogService
    webhook_events: WebhookEventStore
    handlers: dict[DataObjectKind, SyncHandler] = field(default_factory=dict)
    shopify: ShopifyClient | None = None
    sheets: SheetsClient | None = None

    async def start(self) -> None:
        await self.scheduler.start()

    async def shutdown(self, timeout: float | None = None) -> bool:
        """Stop scheduling, let running jobs finish, drop the rest.

        Returns:
            True if the queue drained within ``timeout``
        """
        timeout = self.settings.shutdown_timeout_seconds if timeout is None else timeout
        self.scheduler.stop()
        drained = await self.queue.wait_for_idle(timeout)
        if not drained:
            dropped = self.queue.clear()
            logger.warning(f"Shutdown timed out after {timeout}s, dropped {dropped} queued jobs")
        for client in (self.shopify, self.sheets):
            if client is not None:
                await client.close()
        return drained


def build_engine(
    settings: Settings | None = None,
    data_objects: DataObjectsConfig | None = None,
    session_factory: sessionmaker = SessionLocal,
    handlers: dict[DataObjectKind, SyncHandler] | None = None,
    scheduler_backend=None,
) -> Engine:
    """Assemble an engine.

    Args:
        settings: Settings, defaults to the cached environment settings
        data_objects: Per-kind config, defaults to built-ins plus DATA_OBJECTS_FILE
        session_factory: Session factory for every store
        handlers: Pre-built handlers; when omitted the Shopify/Sheets handlers are built
        scheduler_backend: APScheduler instance to wrap (tests pass a mock)
    """
    settings = settings or get_settings()
    if data_objects is None:
        data_objects = load_data_objects(path=settings.data_objects_file)

    mappings = IdMappingStore(session_factory)
    states = SyncStateStore(session_factory)
    job_logs = JobLogService(session_factory)
    webhook_events = WebhookEventStore(session_factory)
    queue = JobQueue(max_concurrent=settings.max_concurrent_jobs)
    scheduler = Scheduler(queue, states, data_objects, settings, scheduler=scheduler_backend)

    shopify = sheets = None
    if handlers is None:
        shopify = ShopifyClient(settings)
        sheets = SheetsClient(settings)
        context = HandlerContext(
            mappings=mappings,
            states=states,
            job_logs=job_logs,
            webhook_events=webhook_events,
            batch_size=settings.batch_size,
        )
        handlers = build_handlers(data_objects, context, settings, shopify, sheets, mappings)

    for kind, handler in handlers.items():
        queue.register_handler(kind, handler.run)

    return Engine(
        settings=settings,
        data_objects=data_objects,
        queue=queue,
        scheduler=scheduler,
        mappings=mappings,
        states=states,
        job_logs=job_logs,
        webhook_events=webhook_events,
        handlers=handlers,
        shopify=shopify,
        sheets=sheets,
    )
