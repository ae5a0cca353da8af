"""Orders: Shopify order webhooks written to the Orders sheet."""

from typing import Any

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import to_gid
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.sync.delta import SyncItem


def format_line_items(line_items: list[dict[str, Any]]) -> str:
    """``2x Mug (MUG-1); 1x Card (no SKU)``."""
    return "; ".join(
        f"{li.get('quantity', 0)}x {li.get('title', '')} ({li.get('sku') or 'no SKU'})"
        for li in line_items
    )


class OrdersAdapter:
    def __init__(self, config: DataObjectConfig, sheets: SheetsClient):
        self.config = config
        self.sheets = sheets
        self.key_field = config.external_id_field or "order_number"

    def external_id_of(self, row: SyncItem) -> str:
        return str(row.get(self.key_field) or "")

    def transform(self, data: dict[str, Any], remote_id: str | None) -> SyncItem:
        customer = data.get("customer") or {}
        customer_name = " ".join(
            part for part in (customer.get("first_name"), customer.get("last_name")) if part
        )
        row = {
            "order_number": data.get("name") or "",
            "email": data.get("email") or "",
            "total": f"{data.get('total_price', '')} {data.get('currency', '')}".strip(),
            "financial_status": data.get("financial_status") or "",
            "fulfillment_status": data.get("fulfillment_status") or "unfulfilled",
            "created_at": data.get("created_at") or "",
            "customer_name": customer_name if self.config.settings.get("include_customer", True) else "",
            "shopify_id": data.get("admin_graphql_api_id")
            or remote_id
            or (to_gid("Order", data["id"]) if data.get("id") else ""),
        }
        if self.config.settings.get("include_line_items", True):
            row["line_items"] = format_line_items(data.get("line_items") or [])
        return row

    async def upsert_source(self, row: SyncItem) -> bool:
        return await self.sheets.upsert_row(self.config.sheet_name, self.key_field, row)
