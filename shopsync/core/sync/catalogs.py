"""Catalogs: rows of the Catalogs sheet pushed to Shopify catalogs."""

import logging

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.exceptions import ItemProcessingError
from shopsync.core.sync.delta import SyncItem
from shopsync.core.sync.source import SheetSource

logger = logging.getLogger(__name__)


class CatalogsAdapter:
    """Catalogs are keyed by name and matched to Shopify by title.

    Shopify catalogs cannot be deleted through this engine; rows removed
    from the sheet are skipped.
    """

    supports_delete = False

    def __init__(self, config: DataObjectConfig, shopify: ShopifyClient, sheets: SheetsClient):
        self.config = config
        self.shopify = shopify
        self.source = SheetSource(config, sheets)
        self._catalogs: dict[str, dict] | None = None

    def external_id_of(self, item: SyncItem) -> str:
        return self.source.external_id_of(item)

    async def read_source(self) -> list[SyncItem]:
        self._catalogs = None
        return await self.source.read()

    async def write_back(self, item: SyncItem, remote_id: str) -> None:
        await self.source.write_back(item, remote_id)

    async def find_existing(self, item: SyncItem) -> str | None:
        catalogs = await self._by_title()
        catalog = catalogs.get(self.external_id_of(item).lower())
        return catalog["id"] if catalog else None

    async def adopt(self, remote_id: str, item: SyncItem) -> None:
        return None

    async def create_remote(self, item: SyncItem) -> str:
        name = self.external_id_of(item)
        if not self.config.settings.get("create_if_not_exists", True):
            raise ItemProcessingError(name, f"Catalog {name!r} does not exist and creation is disabled")
        catalog = await self.shopify.create_catalog(name)
        if self._catalogs is not None:
            self._catalogs[name.lower()] = catalog
        logger.info(f"Created catalog {name} -> {catalog['id']}")
        return catalog["id"]

    async def is_unchanged(self, remote_id: str, item: SyncItem) -> bool:
        catalogs = await self._by_title()
        return any(
            catalog["id"] == remote_id and catalog["title"].strip() == self.external_id_of(item)
            for catalog in catalogs.values()
        )

    async def update_remote(self, remote_id: str, item: SyncItem) -> None:
        await self.shopify.update_catalog(remote_id, self.external_id_of(item))

    async def delete_remote(self, remote_id: str) -> None:
        raise NotImplementedError("Catalogs are not deleted")

    async def archive_remote(self, remote_id: str) -> None:
        raise NotImplementedError("Catalogs are not archived")

    async def _by_title(self) -> dict[str, dict]:
        if self._catalogs is None:
            catalogs = await self.shopify.get_catalogs()
            self._catalogs = {catalog["title"].strip().lower(): catalog for catalog in catalogs}
        return self._catalogs
