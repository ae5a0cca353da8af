"""Tests for the per-kind adapters."""

from unittest.mock import AsyncMock

import pytest

from shopsync.api.services.sheets_client import SheetData, SheetRow
from shopsync.core.data_objects import DataObjectKind
from shopsync.core.exceptions import ItemProcessingError
from shopsync.core.sync.customers import CustomersAdapter, format_address
from shopsync.core.sync.inventory import InventoryAdapter
from shopsync.core.sync.orders import OrdersAdapter, format_line_items
from shopsync.core.sync.products import ProductsAdapter, map_status, product_input


class TestProductsAdapter:
    """Test suite for product row mapping."""

    def test_product_input_maps_sheet_columns(self):
        item = {
            "sku": "MUG-1",
            "title": "Mug",
            "description": "<p>Big</p>",
            "product_type": "Kitchen",
            "tags": "ceramic, blue ,",
            "status": "Draft",
        }

        result = product_input(item)

        assert result["title"] == "Mug"
        assert result["descriptionHtml"] == "<p>Big</p>"
        assert result["productType"] == "Kitchen"
        assert result["tags"] == ["ceramic", "blue"]
        assert result["status"] == "DRAFT"

    def test_title_falls_back_to_sku(self):
        assert product_input({"sku": "MUG-1"})["title"] == "MUG-1"

    def test_unknown_status_is_active(self):
        assert map_status("retired") == "ACTIVE"
        assert map_status(None) == "ACTIVE"

    @pytest.mark.asyncio
    async def test_create_sets_variant_and_external_id(self, data_objects):
        """Creating a product also creates its SKU variant and tags it."""
        # Setup
        shopify = AsyncMock()
        shopify.create_product.return_value = {"id": "gid://shopify/Product/1"}
        adapter = ProductsAdapter(data_objects[DataObjectKind.PRODUCTS], shopify, AsyncMock())

        # Execute
        remote_id = await adapter.create_remote({"sku": "MUG-1", "title": "Mug", "price": "9.5"})

        # Verify
        assert remote_id == "gid://shopify/Product/1"
        variant = shopify.create_variant.call_args.args[1]
        assert variant["inventoryItem"]["sku"] == "MUG-1"
        assert variant["price"] == "9.5"
        shopify.set_metafield.assert_awaited_once_with(
            "gid://shopify/Product/1", "custom", "erp_external_id", "MUG-1"
        )

    @pytest.mark.asyncio
    async def test_is_unchanged_compares_fields_and_price(self, data_objects):
        item = {"sku": "MUG-1", "title": "Mug", "price": "9.50"}
        remote = {
            **product_input(item),
            "variants": {"edges": [{"node": {"id": "v1", "sku": "MUG-1", "price": "9.5"}}]},
        }
        shopify = AsyncMock()
        shopify.get_product.return_value = remote
        adapter = ProductsAdapter(data_objects[DataObjectKind.PRODUCTS], shopify, AsyncMock())

        assert await adapter.is_unchanged("gid://shopify/Product/1", item) is True
        assert await adapter.is_unchanged("gid://shopify/Product/1", {**item, "price": "10"}) is False
        assert await adapter.is_unchanged("gid://shopify/Product/1", {**item, "title": "Cup"}) is False

    @pytest.mark.asyncio
    async def test_write_back_only_with_shopify_id_column(self, data_objects):
        sheets = AsyncMock()
        sheets.read_all.return_value = SheetData(
            headers=["sku", "title", "shopify_id"],
            rows=[SheetRow(row_index=2, values={"sku": "MUG-1", "title": "Mug", "shopify_id": ""})],
        )
        adapter = ProductsAdapter(data_objects[DataObjectKind.PRODUCTS], AsyncMock(), sheets)

        items = await adapter.read_source()
        await adapter.write_back(items[0], "gid://shopify/Product/1")

        assert items[0]["row_index"] == 2
        sheets.update_cell.assert_awaited_once_with(
            "Products", 2, "shopify_id", "gid://shopify/Product/1",
            headers=["sku", "title", "shopify_id"],
        )


class TestInventoryAdapter:
    """Test suite for inventory level pushes."""

    @pytest.fixture
    def shopify(self):
        client = AsyncMock()
        client.get_locations.return_value = [
            {"id": "gid://shopify/Location/1", "name": "Warehouse", "isActive": True},
            {"id": "gid://shopify/Location/2", "name": "Store", "isActive": True},
        ]
        return client

    @pytest.fixture
    def adapter(self, data_objects, shopify, mapping_store):
        return InventoryAdapter(data_objects[DataObjectKind.INVENTORY], shopify, AsyncMock(), mapping_store)

    @pytest.mark.asyncio
    async def test_unknown_sku_asks_for_product_sync(self, adapter, shopify):
        shopify.find_inventory_item_by_sku.return_value = None

        with pytest.raises(ItemProcessingError, match="sync products first"):
            await adapter.create_remote({"sku": "MUG-1", "quantity": "4"})

    @pytest.mark.asyncio
    async def test_mapped_product_without_variant(self, adapter, shopify, mapping_store):
        """A SKU the engine created as a product but Shopify cannot find."""
        mapping_store.upsert(DataObjectKind.PRODUCTS, "MUG-1", "gid://shopify/Product/1")
        shopify.find_inventory_item_by_sku.return_value = None

        with pytest.raises(ItemProcessingError, match="may need resync"):
            await adapter.create_remote({"sku": "MUG-1", "quantity": "4"})

    @pytest.mark.asyncio
    async def test_create_sets_quantity_at_first_location(self, adapter, shopify):
        shopify.find_inventory_item_by_sku.return_value = "gid://shopify/InventoryItem/7"

        remote_id = await adapter.create_remote({"sku": "MUG-1", "quantity": "4"})

        assert remote_id == "gid://shopify/InventoryItem/7"
        shopify.set_inventory_quantity.assert_awaited_once_with(
            "gid://shopify/InventoryItem/7", "gid://shopify/Location/1", 4
        )

    @pytest.mark.asyncio
    async def test_named_location_is_used(self, adapter, shopify):
        await adapter.update_remote("item", {"sku": "MUG-1", "quantity": "2", "location": "store"})

        shopify.set_inventory_quantity.assert_awaited_once_with("item", "gid://shopify/Location/2", 2)

    @pytest.mark.asyncio
    async def test_unknown_location_fails_item(self, adapter):
        with pytest.raises(ItemProcessingError, match="Unknown location"):
            await adapter.update_remote("item", {"sku": "MUG-1", "quantity": "2", "location": "Moon"})

    @pytest.mark.asyncio
    async def test_invalid_quantity_fails_item(self, adapter):
        with pytest.raises(ItemProcessingError, match="Invalid quantity"):
            await adapter.update_remote("item", {"sku": "MUG-1", "quantity": "lots"})

    @pytest.mark.asyncio
    async def test_is_unchanged(self, adapter, shopify):
        shopify.get_inventory_quantity.return_value = 4

        assert await adapter.is_unchanged("item", {"sku": "MUG-1", "quantity": "4"}) is True
        assert await adapter.is_unchanged("item", {"sku": "MUG-1", "quantity": "5"}) is False
        shopify.get_locations.assert_awaited_once()

    def test_cannot_delete(self, adapter):
        assert adapter.supports_delete is False


class TestOrdersAdapter:
    """Test suite for order webhook rows."""

    def test_transform(self, data_objects):
        adapter = OrdersAdapter(data_objects[DataObjectKind.ORDERS], AsyncMock())
        data = {
            "id": 450789469,
            "name": "#1001",
            "email": "buyer@example.com",
            "total_price": "20.00",
            "currency": "EUR",
            "financial_status": "paid",
            "fulfillment_status": None,
            "customer": {"first_name": "Ada", "last_name": "Lovelace"},
            "line_items": [
                {"quantity": 2, "title": "Mug", "sku": "MUG-1"},
                {"quantity": 1, "title": "Card", "sku": None},
            ],
        }

        row = adapter.transform(data, None)

        assert row["order_number"] == "#1001"
        assert row["total"] == "20.00 EUR"
        assert row["fulfillment_status"] == "unfulfilled"
        assert row["customer_name"] == "Ada Lovelace"
        assert row["shopify_id"] == "gid://shopify/Order/450789469"
        assert row["line_items"] == "2x Mug (MUG-1); 1x Card (no SKU)"
        assert adapter.external_id_of(row) == "#1001"

    def test_line_items_can_be_disabled(self, data_objects):
        config = data_objects[DataObjectKind.ORDERS].model_copy(
            update={"settings": {"include_line_items": False}}
        )
        adapter = OrdersAdapter(config, AsyncMock())

        assert "line_items" not in adapter.transform({"name": "#1"}, None)

    def test_format_line_items_empty(self):
        assert format_line_items([]) == ""


class TestCustomersAdapter:
    """Test suite for customer webhook rows."""

    def test_transform_lowercases_email(self, data_objects):
        adapter = CustomersAdapter(data_objects[DataObjectKind.CUSTOMERS], AsyncMock())
        data = {
            "id": 1,
            "email": " Ada@Example.COM ",
            "first_name": "Ada",
            "addresses": [
                {"address1": "1 Main St", "city": "Springfield", "province": "IL",
                 "zip": "62701", "country": "US"},
            ],
        }

        row = adapter.transform(data, "gid://shopify/Customer/1")

        assert row["email"] == "ada@example.com"
        assert row["addresses"] == "1 Main St, Springfield, IL 62701, US"
        assert row["shopify_id"] == "gid://shopify/Customer/1"
        assert adapter.external_id_of(row) == "ada@example.com"

    def test_format_address_skips_blanks(self):
        assert format_address({"address1": "1 Main St", "country": "US"}) == "1 Main St, US"
