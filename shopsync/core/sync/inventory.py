"""Inventory: sheet quantities pushed to Shopify inventory levels."""

import logging

from shopsync.api.services.mapping_store import IdMappingStore
from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.core.data_objects import DataObjectConfig, DataObjectKind
from shopsync.core.exceptions import ItemProcessingError
from shopsync.core.sync.delta import SyncItem
from shopsync.core.sync.source import SheetSource

logger = logging.getLogger(__name__)


class InventoryAdapter:
    """Maps SKU -> inventory item id and sets the available quantity.

    Inventory records cannot be deleted; rows removed from the sheet are
    skipped.
    """

    supports_delete = False

    def __init__(
        self,
        config: DataObjectConfig,
        shopify: ShopifyClient,
        sheets: SheetsClient,
        mappings: IdMappingStore,
        default_location: str | None = None,
    ):
        self.config = config
        self.shopify = shopify
        self.mappings = mappings
        self.source = SheetSource(config, sheets)
        self.default_location = config.settings.get("default_location_name") or default_location
        self._locations: dict[str, str] | None = None
        self._fallback_location: str | None = None

    def external_id_of(self, item: SyncItem) -> str:
        return self.source.external_id_of(item)

    async def read_source(self) -> list[SyncItem]:
        self._locations = None
        return await self.source.read()

    async def write_back(self, item: SyncItem, remote_id: str) -> None:
        await self.source.write_back(item, remote_id)

    async def find_existing(self, item: SyncItem) -> str | None:
        return None

    async def adopt(self, remote_id: str, item: SyncItem) -> None:
        return None

    async def create_remote(self, item: SyncItem) -> str:
        sku = self.external_id_of(item)
        inventory_item_id = await self.shopify.find_inventory_item_by_sku(sku)
        if inventory_item_id is None:
            if self.mappings.is_managed(DataObjectKind.PRODUCTS, sku):
                raise ItemProcessingError(sku, "Product mapped but variant not found - may need resync")
            raise ItemProcessingError(sku, "SKU not found in Shopify - sync products first")
        await self.update_remote(inventory_item_id, item)
        return inventory_item_id

    async def is_unchanged(self, remote_id: str, item: SyncItem) -> bool:
        location_id = await self._location_for(item)
        current = await self.shopify.get_inventory_quantity(remote_id, location_id)
        return current == _quantity(item)

    async def update_remote(self, remote_id: str, item: SyncItem) -> None:
        location_id = await self._location_for(item)
        quantity = _quantity(item)
        await self.shopify.set_inventory_quantity(remote_id, location_id, quantity)
        logger.debug(f"Set {self.external_id_of(item)} to {quantity} at {location_id}")

    async def delete_remote(self, remote_id: str) -> None:
        raise NotImplementedError("Inventory levels cannot be deleted")

    async def archive_remote(self, remote_id: str) -> None:
        raise NotImplementedError("Inventory levels cannot be archived")

    async def _location_for(self, item: SyncItem) -> str:
        if self._locations is None:
            locations = await self.shopify.get_locations()
            active = [loc for loc in locations if loc.get("isActive", True)]
            self._locations = {loc["name"].strip().lower(): loc["id"] for loc in active}
            self._fallback_location = active[0]["id"] if active else None

        name = (item.get("location") or self.default_location or "").strip().lower()
        if name:
            location_id = self._locations.get(name)
            if location_id is None:
                raise ItemProcessingError(self.external_id_of(item), f"Unknown location {name!r}")
            return location_id
        if self._fallback_location is None:
            raise ItemProcessingError(self.external_id_of(item), "No active Shopify location")
        return self._fallback_location


def _quantity(item: SyncItem) -> int:
    raw = str(item.get("quantity") or "0").strip()
    try:
        return int(float(raw))
    except ValueError:
        raise ItemProcessingError(str(item.get("sku", "")), f"Invalid quantity {raw!r}") from None
