"""Tests for the catalog, metaobject and discount adapters."""

from unittest.mock import AsyncMock

import pytest

from shopsync.core.data_objects import DataObjectKind, SyncMode
from shopsync.core.exceptions import ItemProcessingError, RemoteAPIError
from shopsync.core.sync.catalogs import CatalogsAdapter
from shopsync.core.sync.discounts import DiscountsAdapter, discount_input
from shopsync.core.sync.metaobjects import MetaobjectsAdapter, metaobject_fields

CATALOGS = DataObjectKind.CATALOGS
METAOBJECTS = DataObjectKind.METAOBJECTS
DISCOUNTS = DataObjectKind.DISCOUNTS


class TestCatalogsAdapter:
    """Test suite for catalog matching and creation."""

    @pytest.fixture
    def shopify(self):
        shopify = AsyncMock()
        shopify.get_catalogs.return_value = [
            {"id": "gid://shopify/Catalog/1", "title": "Wholesale ", "status": "ACTIVE"},
        ]
        return shopify

    @pytest.mark.asyncio
    async def test_matches_existing_title_once(self, data_objects, shopify):
        adapter = CatalogsAdapter(data_objects[CATALOGS], shopify, AsyncMock())

        assert await adapter.find_existing({"name": "wholesale"}) == "gid://shopify/Catalog/1"
        assert await adapter.find_existing({"name": "Retail"}) is None
        shopify.get_catalogs.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_adds_to_cache(self, data_objects, shopify):
        # Setup
        shopify.create_catalog.return_value = {"id": "gid://shopify/Catalog/2", "title": "Retail"}
        adapter = CatalogsAdapter(data_objects[CATALOGS], shopify, AsyncMock())

        # Execute
        remote_id = await adapter.create_remote({"name": "Retail"})

        # Verify
        assert remote_id == "gid://shopify/Catalog/2"
        shopify.create_catalog.assert_awaited_once_with("Retail")
        assert await adapter.find_existing({"name": "retail"}) == "gid://shopify/Catalog/2"

    @pytest.mark.asyncio
    async def test_create_disabled(self, data_objects, shopify):
        config = data_objects[CATALOGS].model_copy(update={"settings": {"create_if_not_exists": False}})
        adapter = CatalogsAdapter(config, shopify, AsyncMock())

        with pytest.raises(ItemProcessingError, match="creation is disabled"):
            await adapter.create_remote({"name": "Retail"})
        shopify.create_catalog.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_renamed_catalog_is_changed(self, data_objects, shopify):
        adapter = CatalogsAdapter(data_objects[CATALOGS], shopify, AsyncMock())

        assert await adapter.is_unchanged("gid://shopify/Catalog/1", {"name": "Wholesale "}) is True
        assert await adapter.is_unchanged("gid://shopify/Catalog/1", {"name": "Wholesale EU"}) is False

    def test_catalogs_are_never_deleted(self, data_objects):
        assert CatalogsAdapter(data_objects[CATALOGS], AsyncMock(), AsyncMock()).supports_delete is False


class TestMetaobjectsAdapter:
    """Test suite for metaobject field mapping and upserts."""

    def test_fields_skip_reserved_and_blank_columns(self):
        item = {
            "handle": "about-us",
            "type": "page_content",
            "shopify_id": "gid://shopify/Metaobject/1",
            "row_index": 4,
            "title": "About us",
            "body": "",
            "order": 3,
        }

        assert metaobject_fields(item) == [
            {"key": "title", "value": "About us"},
            {"key": "order", "value": "3"},
        ]

    def test_type_falls_back_to_setting(self, data_objects):
        adapter = MetaobjectsAdapter(data_objects[METAOBJECTS], AsyncMock(), AsyncMock())

        assert adapter.type_of({"type": "faq"}) == "faq"
        assert adapter.type_of({}) == "custom_content"

    @pytest.mark.asyncio
    async def test_create_upserts_by_handle(self, data_objects):
        # Setup
        shopify = AsyncMock()
        shopify.upsert_metaobject.return_value = {"id": "gid://shopify/Metaobject/7"}
        adapter = MetaobjectsAdapter(data_objects[METAOBJECTS], shopify, AsyncMock())

        # Execute
        remote_id = await adapter.create_remote({"handle": "about-us", "title": "About us"})

        # Verify
        assert remote_id == "gid://shopify/Metaobject/7"
        shopify.upsert_metaobject.assert_awaited_once_with(
            "custom_content", "about-us", [{"key": "title", "value": "About us"}]
        )

    @pytest.mark.asyncio
    async def test_row_without_fields_fails(self, data_objects):
        shopify = AsyncMock()
        adapter = MetaobjectsAdapter(data_objects[METAOBJECTS], shopify, AsyncMock())

        with pytest.raises(ItemProcessingError, match="No fields"):
            await adapter.create_remote({"handle": "empty"})
        shopify.upsert_metaobject.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_definition_is_an_item_error(self, data_objects):
        shopify = AsyncMock()
        shopify.upsert_metaobject.side_effect = RemoteAPIError("upsertMetaobject: Definition does not exist")
        adapter = MetaobjectsAdapter(data_objects[METAOBJECTS], shopify, AsyncMock())

        with pytest.raises(ItemProcessingError, match="definition 'custom_content' not found"):
            await adapter.update_remote("gid://shopify/Metaobject/7", {"handle": "about-us", "title": "x"})

    @pytest.mark.asyncio
    async def test_is_unchanged_ignores_extra_remote_fields(self, data_objects):
        shopify = AsyncMock()
        shopify.get_metaobject.return_value = {
            "id": "gid://shopify/Metaobject/7",
            "fields": [{"key": "title", "value": "About us"}, {"key": "hero", "value": None}],
        }
        adapter = MetaobjectsAdapter(data_objects[METAOBJECTS], shopify, AsyncMock())

        assert await adapter.is_unchanged("gid://shopify/Metaobject/7", {"handle": "about-us", "title": "About us"})
        assert not await adapter.is_unchanged("gid://shopify/Metaobject/7", {"handle": "about-us", "title": "Team"})

    @pytest.mark.asyncio
    async def test_archive_is_refused(self, data_objects):
        adapter = MetaobjectsAdapter(data_objects[METAOBJECTS], AsyncMock(), AsyncMock())

        with pytest.raises(ItemProcessingError, match="cannot be archived"):
            await adapter.archive_remote("gid://shopify/Metaobject/7")


class TestDiscountInput:
    """Test suite for discount row mapping."""

    def test_percentage(self):
        result = discount_input({
            "code": "SAVE10",
            "type": "percentage",
            "value": "10",
            "starts_at": "2026-01-01T00:00:00Z",
        })

        assert result["code"] == "SAVE10"
        assert result["title"] == "SAVE10"
        assert result["customerGets"]["value"] == {"percentage": 0.1}
        assert result["startsAt"] == "2026-01-01T00:00:00+00:00"
        assert "endsAt" not in result

    def test_shopify_export_row(self):
        """Exports name the code, use negative values and Start/End columns."""
        result = discount_input({
            "name": "TENOFF",
            "value_type": "fixed_amount",
            "value": "-10.00",
            "start": "2026-03-01T08:00:00Z",
            "end": "2026-04-01T08:00:00Z",
        })

        assert result["code"] == "TENOFF"
        assert result["customerGets"]["value"] == {
            "discountAmount": {"amount": "10.00", "appliesOnEachItem": False}
        }
        assert result["endsAt"] == "2026-04-01T08:00:00+00:00"

    def test_missing_start_defaults_to_now(self):
        result = discount_input({"code": "NOW", "value": "5"})
        assert result["startsAt"].endswith("+00:00")

    def test_invalid_value(self):
        with pytest.raises(ItemProcessingError, match="Invalid discount value"):
            discount_input({"code": "BAD", "value": "ten"})


class TestDiscountsAdapter:
    """Test suite for discount code sync."""

    def test_overwrite_mode_by_default(self, data_objects):
        config = data_objects[DISCOUNTS]

        assert config.mode == SyncMode.OVERWRITE
        assert config.enabled is False

    def test_external_id_falls_back_to_name(self, data_objects):
        adapter = DiscountsAdapter(data_objects[DISCOUNTS], AsyncMock(), AsyncMock())

        assert adapter.external_id_of({"code": "SAVE10"}) == "SAVE10"
        assert adapter.external_id_of({"name": "TENOFF"}) == "TENOFF"

    @pytest.mark.asyncio
    async def test_create(self, data_objects):
        shopify = AsyncMock()
        shopify.create_discount_code.return_value = "gid://shopify/DiscountCodeNode/3"
        adapter = DiscountsAdapter(data_objects[DISCOUNTS], shopify, AsyncMock())

        remote_id = await adapter.create_remote({"code": "SAVE10", "value": "10"})

        assert remote_id == "gid://shopify/DiscountCodeNode/3"
        assert shopify.create_discount_code.await_args.args[0]["code"] == "SAVE10"

    @pytest.mark.asyncio
    async def test_is_unchanged_compares_value_and_end_date(self, data_objects):
        # Setup
        shopify = AsyncMock()
        shopify.get_discount.return_value = {
            "id": "gid://shopify/DiscountCodeNode/3",
            "title": "SAVE10",
            "endsAt": "2026-02-01T00:00:00Z",
            "percentage": 0.1,
            "amount": None,
        }
        adapter = DiscountsAdapter(data_objects[DISCOUNTS], shopify, AsyncMock())
        row = {"code": "SAVE10", "value": "10", "ends_at": "2026-02-01T12:00:00Z"}

        # Execute / Verify
        assert await adapter.is_unchanged("gid://shopify/DiscountCodeNode/3", row) is True
        assert await adapter.is_unchanged("gid://shopify/DiscountCodeNode/3", {**row, "value": "15"}) is False
        assert await adapter.is_unchanged("gid://shopify/DiscountCodeNode/3", {**row, "ends_at": ""}) is False

    @pytest.mark.asyncio
    async def test_deleted_discount_is_changed(self, data_objects):
        shopify = AsyncMock()
        shopify.get_discount.return_value = None
        adapter = DiscountsAdapter(data_objects[DISCOUNTS], shopify, AsyncMock())

        assert await adapter.is_unchanged("gid://shopify/DiscountCodeNode/3", {"code": "X", "value": "1"}) is False

    @pytest.mark.asyncio
    async def test_archive_expires_code(self, data_objects):
        shopify = AsyncMock()
        adapter = DiscountsAdapter(data_objects[DISCOUNTS], shopify, AsyncMock())

        await adapter.archive_remote("gid://shopify/DiscountCodeNode/3")

        remote_id, update = shopify.update_discount_code.await_args.args
        assert remote_id == "gid://shopify/DiscountCodeNode/3"
        assert set(update) == {"endsAt"}
