"""Customers: Shopify customer webhooks written to the Customers sheet."""

from typing import Any

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import to_gid
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.sync.delta import SyncItem


def format_address(address: dict[str, Any]) -> str:
    locality = f"{address.get('city') or ''}, {address.get('province') or ''} {address.get('zip') or ''}"
    parts = [
        address.get("address1"),
        address.get("address2"),
        locality.strip(", "),
        address.get("country"),
    ]
    return ", ".join(part for part in parts if part)


class CustomersAdapter:
    def __init__(self, config: DataObjectConfig, sheets: SheetsClient):
        self.config = config
        self.sheets = sheets
        self.key_field = config.external_id_field or "email"

    def external_id_of(self, row: SyncItem) -> str:
        return str(row.get(self.key_field) or "").strip().lower()

    def transform(self, data: dict[str, Any], remote_id: str | None) -> SyncItem:
        if self.config.settings.get("include_addresses") and data.get("addresses"):
            addresses = " | ".join(format_address(a) for a in data["addresses"])
        elif data.get("default_address"):
            addresses = format_address(data["default_address"])
        else:
            addresses = ""

        return {
            "email": (data.get("email") or "").strip().lower(),
            "first_name": data.get("first_name") or "",
            "last_name": data.get("last_name") or "",
            "phone": data.get("phone") or "",
            "addresses": addresses,
            "shopify_id": data.get("admin_graphql_api_id")
            or remote_id
            or (to_gid("Customer", data["id"]) if data.get("id") else ""),
        }

    async def upsert_source(self, row: SyncItem) -> bool:
        return await self.sheets.upsert_row(self.config.sheet_name, self.key_field, row)
