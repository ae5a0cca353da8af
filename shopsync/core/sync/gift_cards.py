"""Gift cards: synced both ways between the GiftCards sheet and Shopify.

New rows are created in Shopify, then current balances are pulled back into
the sheet. Two layouts are read:

- the simple one: ``code``, ``initial_value``, ``balance``, ``note``,
  ``shopify_id``
- Shopify's export: ``Id``, ``Last Characters``, ``Initial Balance``,
  ``Current Balance``

Export rows only carry the last characters of the code, so they are never
created, only kept up to date.
"""

import logging
import re

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
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
from shopsync.core.sync.source import REMOTE_ID_COLUMN, SheetSource, column

logger = logging.getLogger(__name__)

BALANCE_COLUMNS = ("balance", "current_balance")
# shorter values are the last characters of an exported code
MIN_CODE_LENGTH = 8


def numeric_id(gid: str) -> str:
    """``gid://shopify/GiftCard/42`` -> ``42``."""
    match = re.search(r"(\d+)$", gid or "")
    return match.group(1) if match else ""


def same_amount(left: str, right: str) -> bool:
    try:
        return float(left) == float(right)
    except (TypeError, ValueError):
        return left == right


def row_label(row: SyncItem) -> str:
    return column(row, "code") or f"row {row.get('row_index')}"


class GiftCardsHandler:
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
            logger.info(f"Ignoring webhook for {self.kind.value}, balances are pulled on schedule")
            return SyncStats()
        return await run_lifecycle(self.context, job, self.sync, handler=self)

    async def sync(self) -> SyncStats:
        stats = SyncStats()
        if self.config.settings.get("create_enabled", True):
            stats += await self.push_new()
        stats += await self.pull_balances()
        return stats

    # =========================================================================
    # Sheet -> Shopify
    # =========================================================================

    async def push_new(self) -> SyncStats:
        rows = await self.source.read()
        candidates = [row for row in rows if self.is_creatable(row)]
        mapped = self.context.mappings.batch_lookup(
            self.kind, [column(row, "code") for row in candidates if column(row, "code")]
        )
        new_cards = [row for row in candidates if not mapped.get(column(row, "code"))]
        logger.debug(f"Found {len(new_cards)} new gift cards in {self.config.sheet_name}")
        return await process_batch(
            new_cards, self.create, self.context.batch_size, external_id_of=row_label, label=self.kind.value
        )

    @staticmethod
    def is_creatable(row: SyncItem) -> bool:
        if column(row, REMOTE_ID_COLUMN, "id"):
            return False
        if column(row, "last_characters") and not column(row, "code"):
            return False
        return bool(column(row, "code", "initial_value", "initial_balance"))

    async def create(self, row: SyncItem) -> ItemResult:
        label = row_label(row)
        initial_value = column(row, "initial_value", "initial_balance")
        try:
            positive = float(initial_value) > 0
        except ValueError:
            positive = False
        if not positive:
            return ItemResult.failed(label, "Gift card requires a positive initial value")

        code = column(row, "code")
        has_full_code = len(code) >= MIN_CODE_LENGTH
        gift_card = await self.shopify.create_gift_card(
            initial_value,
            code=code if has_full_code else None,
            note=column(row, "note", "message") or None,
        )

        updates = []
        if REMOTE_ID_COLUMN in self.source.headers:
            updates.append((row["row_index"], REMOTE_ID_COLUMN, gift_card["id"]))
        if not has_full_code and gift_card.get("plaintext_code"):
            # the full code is only ever returned at creation
            code = gift_card["plaintext_code"]
            if "code" in self.source.headers:
                updates.append((row["row_index"], "code", code))
            logger.info(f"Gift card {gift_card['id']} created with generated code, saved to row {row['row_index']}")
        await self.sheets.batch_update(self.config.sheet_name, updates, headers=self.source.headers)

        if code:
            self.context.mappings.upsert(self.kind, code, gift_card["id"])
        return ItemResult(True, "created", code or label, gift_card["id"])

    # =========================================================================
    # Shopify -> sheet
    # =========================================================================

    async def pull_balances(self) -> SyncStats:
        stats = SyncStats()
        rows = await self.source.read()
        balance_column = next((c for c in BALANCE_COLUMNS if c in self.source.headers), None)
        if balance_column is None:
            logger.warning(f"Sheet {self.config.sheet_name} has no balance column, skipping balance pull")
            return stats

        by_id: dict[str, SyncItem] = {}
        for row in rows:
            if column(row, REMOTE_ID_COLUMN):
                by_id[numeric_id(column(row, REMOTE_ID_COLUMN))] = row
            if column(row, "id"):
                by_id[column(row, "id")] = row
        by_code = {column(row, "code"): row for row in rows if column(row, "code")}
        for code, remote_id in self.context.mappings.batch_lookup(self.kind, by_code).items():
            if remote_id:
                by_id.setdefault(numeric_id(remote_id), by_code[code])

        updates = []
        for gift_card in await self.shopify.get_gift_cards():
            row = by_id.get(numeric_id(gift_card["id"]))
            if row is None:
                continue
            balance = str((gift_card.get("balance") or {}).get("amount", ""))
            if same_amount(column(row, balance_column), balance):
                stats.record(ItemResult(True, "unchanged", row_label(row), gift_card["id"]))
                continue
            updates.append((row["row_index"], balance_column, balance))
            stats.record(ItemResult(True, "updated", row_label(row), gift_card["id"]))

        if updates:
            await self.sheets.batch_update(self.config.sheet_name, updates, headers=self.source.headers)
            logger.info(f"Updated {len(updates)} gift card balances in {self.config.sheet_name}")
        return stats
