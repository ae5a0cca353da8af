"""Products: sheet rows pushed to Shopify products."""

import logging

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient, edges
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.sync.delta import SyncItem, get_differences
from shopsync.core.sync.source import SheetSource

logger = logging.getLogger(__name__)

EXTERNAL_ID_NAMESPACE = "custom"
EXTERNAL_ID_KEY = "erp_external_id"

STATUS_MAP = {
    "active": "ACTIVE",
    "archived": "ARCHIVED",
    "draft": "DRAFT",
}

COMPARED_FIELDS = ["title", "descriptionHtml", "vendor", "productType", "status", "tags"]


def map_status(status: str | None) -> str:
    return STATUS_MAP.get((status or "").strip().lower(), "ACTIVE")


def product_input(item: SyncItem) -> dict:
    """ProductInput fields for a sheet row."""
    tags = [t.strip() for t in (item.get("tags") or "").split(",") if t.strip()]
    return {
        "title": item.get("title") or item.get("sku"),
        "descriptionHtml": item.get("description") or item.get("descriptionhtml") or "",
        "vendor": item.get("vendor") or "",
        "productType": item.get("product_type") or item.get("producttype") or "",
        "tags": tags,
        "status": map_status(item.get("status")),
    }


class ProductsAdapter:
    supports_delete = True

    def __init__(self, config: DataObjectConfig, shopify: ShopifyClient, sheets: SheetsClient):
        self.config = config
        self.shopify = shopify
        self.source = SheetSource(config, sheets)

    def external_id_of(self, item: SyncItem) -> str:
        return self.source.external_id_of(item)

    async def read_source(self) -> list[SyncItem]:
        return await self.source.read()

    async def write_back(self, item: SyncItem, remote_id: str) -> None:
        await self.source.write_back(item, remote_id)

    async def find_existing(self, item: SyncItem) -> str | None:
        product = await self.shopify.get_product_by_sku(self.external_id_of(item))
        return product["id"] if product else None

    async def adopt(self, remote_id: str, item: SyncItem) -> None:
        await self.shopify.set_metafield(
            remote_id, EXTERNAL_ID_NAMESPACE, EXTERNAL_ID_KEY, self.external_id_of(item)
        )

    async def create_remote(self, item: SyncItem) -> str:
        sku = self.external_id_of(item)
        product = await self.shopify.create_product(product_input(item))
        await self.shopify.create_variant(product["id"], {
            "price": item.get("price") or "0.00",
            "inventoryItem": {"sku": sku, "tracked": True},
        })
        await self.shopify.set_metafield(product["id"], EXTERNAL_ID_NAMESPACE, EXTERNAL_ID_KEY, sku)
        logger.info(f"Created product {sku} -> {product['id']}")
        return product["id"]

    async def is_unchanged(self, remote_id: str, item: SyncItem) -> bool:
        product = await self.shopify.get_product(remote_id)
        if product is None:
            return False

        wanted = product_input(item)
        current = {field: product.get(field) for field in COMPARED_FIELDS}
        if get_differences(wanted, current, COMPARED_FIELDS):
            return False
        variant = self._variant(product, self.external_id_of(item))
        if variant is None:
            return False
        return _same_price(variant.get("price"), item.get("price") or "0.00")

    async def update_remote(self, remote_id: str, item: SyncItem) -> None:
        product = await self.shopify.update_product(remote_id, product_input(item))
        variant = self._variant(product, self.external_id_of(item))
        price = item.get("price")
        if variant is not None and price and not _same_price(variant.get("price"), price):
            await self.shopify.update_variant_price(remote_id, variant["id"], price)

    async def delete_remote(self, remote_id: str) -> None:
        await self.shopify.delete_product(remote_id)

    async def archive_remote(self, remote_id: str) -> None:
        await self.shopify.archive_product(remote_id)

    @staticmethod
    def _variant(product: dict, sku: str) -> dict | None:
        for variant in edges(product.get("variants")):
            if variant.get("sku") == sku:
                return variant
        return None


def _same_price(a, b) -> bool:
    try:
        return round(float(a), 2) == round(float(b), 2)
    except (TypeError, ValueError):
        return str(a) == str(b)
