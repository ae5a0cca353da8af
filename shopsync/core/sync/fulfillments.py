"""Fulfillments: tracking rows in the Fulfillments sheet pushed to Shopify orders.

Unlike the delta-driven push kinds, fulfillments are a work list. Every
pending row becomes one Shopify fulfillment, and the row is then marked
``synced`` so it is never sent twice.
"""

import logging

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.core.data_objects import DataObjectConfig, DataObjectKind
from shopsync.core.exceptions import SourceAPIError
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
from shopsync.core.sync.source import REMOTE_ID_COLUMN, SheetSource

logger = logging.getLogger(__name__)

STATUS_COLUMN = "status"
SYNCED_STATUS = "synced"
DONE_STATUSES = {"fulfilled", SYNCED_STATUS}


def is_pending(row: SyncItem) -> bool:
    """A row with a tracking number that has not been fulfilled yet."""
    status = str(row.get(STATUS_COLUMN) or "").strip().lower()
    return bool(row.get("tracking_number")) and status not in DONE_STATUSES


class FulfillmentsHandler:
    """Creates a Shopify fulfillment for every pending Fulfillments row.

    The order is resolved through the orders mapping first and by order
    name second; a name lookup records the mapping for next time.
    """

    def __init__(
        self,
        kind: DataObjectKind,
        config: DataObjectConfig,
        shopify: ShopifyClient,
        sheets: SheetsClient,
        context: HandlerContext,
    ):
        self.kind = kind
        self.config = config
        self.shopify = shopify
        self.sheets = sheets
        self.context = context
        self.source = SheetSource(config, sheets)
        self.state = HandlerState.IDLE

    async def run(self, job: Job) -> SyncStats:
        if job.job_type == JobType.WEBHOOK:
            logger.info(f"Ignoring webhook for push kind {self.kind.value}")
            return SyncStats()
        return await run_lifecycle(self.context, job, self.sync, handler=self)

    async def sync(self) -> SyncStats:
        rows = await self.source.read()
        if rows and STATUS_COLUMN not in self.source.headers:
            raise SourceAPIError(f"Sheet {self.config.sheet_name} has no {STATUS_COLUMN} column")

        pending = [row for row in rows if is_pending(row)]
        logger.info(f"Found {len(pending)} pending fulfillments in {self.config.sheet_name}")
        return await process_batch(
            pending,
            self.fulfill,
            self.context.batch_size,
            external_id_of=lambda row: str(row.get("order_number") or f"row {row.get('row_index')}"),
            label=self.kind.value,
        )

    async def fulfill(self, row: SyncItem) -> ItemResult:
        order_number = str(row.get("order_number") or "").strip()
        if not order_number:
            return ItemResult.failed(f"row {row.get('row_index')}", "Missing order number")

        order_id = await self._order_id(order_number)
        if order_id is None:
            return ItemResult.failed(order_number, "Order not found in Shopify")

        fulfillment = await self.shopify.create_fulfillment(
            order_id,
            tracking_number=row.get("tracking_number") or None,
            tracking_company=row.get("tracking_company") or None,
            notify_customer=bool(self.config.settings.get("notify_customer", True)),
        )
        await self._mark_synced(row["row_index"], fulfillment["id"])
        logger.info(f"Fulfilled order {order_number} -> {fulfillment['id']}")
        return ItemResult(True, "created", order_number, fulfillment["id"])

    async def _order_id(self, order_number: str) -> str | None:
        order_id = self.context.mappings.lookup_by_external_id(DataObjectKind.ORDERS, order_number)
        if order_id:
            return order_id
        order = await self.shopify.get_order_by_name(order_number)
        if order is None:
            return None
        self.context.mappings.upsert(DataObjectKind.ORDERS, order_number, order["id"])
        return order["id"]

    async def _mark_synced(self, row_index: int, fulfillment_id: str) -> None:
        updates = [(row_index, STATUS_COLUMN, SYNCED_STATUS)]
        if REMOTE_ID_COLUMN in self.source.headers:
            updates.append((row_index, REMOTE_ID_COLUMN, fulfillment_id))
        await self.sheets.batch_update(self.config.sheet_name, updates, headers=self.source.headers)
