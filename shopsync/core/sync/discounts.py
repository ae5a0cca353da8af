"""Discounts: rows of the Discounts sheet pushed to Shopify discount codes.

Runs in ``overwrite`` mode by default, so codes dropped from the sheet stay
live in Shopify. Both the simple sheet layout (``code``, ``type``,
``value``) and Shopify's discount export (``Name``, ``Value Type``,
``Start``, ``End``) are accepted.
"""

import logging
from datetime import UTC, datetime

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.exceptions import ItemProcessingError
from shopsync.core.sync.delta import SyncItem, shallow_equal
from shopsync.core.sync.source import SheetSource, column

logger = logging.getLogger(__name__)


def discount_type(item: SyncItem) -> str:
    """``percentage`` unless the row says fixed."""
    raw = (column(item, "value_type") or column(item, "type", "discount_class")).lower()
    return "fixed" if raw in ("fixed", "fixed_amount") else "percentage"


def to_iso(value: str) -> str | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).isoformat()
    except ValueError:
        return None


def discount_input(item: SyncItem) -> dict:
    """DiscountCodeBasicInput for a sheet row."""
    code = column(item, "code", "name")
    # exports list discounts as negative amounts
    raw_value = column(item, "value").lstrip("-")
    try:
        value = float(raw_value)
    except ValueError:
        raise ItemProcessingError(code, f"Invalid discount value {raw_value!r}") from None

    if discount_type(item) == "percentage":
        customer_value = {"percentage": value / 100}
    else:
        customer_value = {"discountAmount": {"amount": raw_value, "appliesOnEachItem": False}}

    starts = column(item, "starts_at", "start", "start_date")
    discount = {
        "title": column(item, "title") or code,
        "code": code,
        "startsAt": to_iso(starts) or datetime.now(UTC).isoformat(),
        "customerGets": {"value": customer_value, "items": {"all": True}},
        "customerSelection": {"all": True},
    }
    ends_at = to_iso(column(item, "ends_at", "end", "end_date"))
    if ends_at:
        discount["endsAt"] = ends_at
    return discount


class DiscountsAdapter:
    supports_delete = True

    def __init__(self, config: DataObjectConfig, shopify: ShopifyClient, sheets: SheetsClient):
        self.config = config
        self.shopify = shopify
        self.source = SheetSource(config, sheets)

    def external_id_of(self, item: SyncItem) -> str:
        return self.source.external_id_of(item) or column(item, "name")

    async def read_source(self) -> list[SyncItem]:
        return await self.source.read()

    async def write_back(self, item: SyncItem, remote_id: str) -> None:
        await self.source.write_back(item, remote_id)

    async def find_existing(self, item: SyncItem) -> str | None:
        return None

    async def adopt(self, remote_id: str, item: SyncItem) -> None:
        return None

    async def create_remote(self, item: SyncItem) -> str:
        remote_id = await self.shopify.create_discount_code(discount_input(item))
        logger.info(f"Created discount {self.external_id_of(item)} -> {remote_id}")
        return remote_id

    async def is_unchanged(self, remote_id: str, item: SyncItem) -> bool:
        current = await self.shopify.get_discount(remote_id)
        if current is None:
            return False
        wanted = discount_input(item)
        value = wanted["customerGets"]["value"]
        if "percentage" in value:
            same_value = current.get("percentage") is not None and float(current["percentage"]) == value["percentage"]
        else:
            amount = current.get("amount")
            same_value = amount is not None and float(amount) == float(value["discountAmount"]["amount"])
        # compare dates only; Shopify normalizes the time part
        return same_value and shallow_equal(
            {"title": wanted["title"], "ends": (wanted.get("endsAt") or "")[:10]},
            {"title": current.get("title"), "ends": (current.get("endsAt") or "")[:10]},
        )

    async def update_remote(self, remote_id: str, item: SyncItem) -> None:
        await self.shopify.update_discount_code(remote_id, discount_input(item))

    async def delete_remote(self, remote_id: str) -> None:
        await self.shopify.delete_discount_code(remote_id)

    async def archive_remote(self, remote_id: str) -> None:
        """Expire the code now instead of deleting it."""
        await self.shopify.update_discount_code(remote_id, {"endsAt": datetime.now(UTC).isoformat()})
