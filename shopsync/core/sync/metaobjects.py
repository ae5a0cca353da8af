"""Metaobjects: rows of the Content sheet pushed to Shopify metaobjects.

The metaobject definition must already exist in Shopify. Every column other
than ``handle``, ``type`` and ``shopify_id`` is sent as a field, so sheet
headers have to match the definition's field keys.
"""

import logging

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.exceptions import ItemProcessingError, RemoteAPIError
from shopsync.core.sync.delta import SyncItem, shallow_equal
from shopsync.core.sync.source import REMOTE_ID_COLUMN, SheetSource

logger = logging.getLogger(__name__)

RESERVED_COLUMNS = {"handle", "type", REMOTE_ID_COLUMN, "row_index"}


def metaobject_fields(item: SyncItem) -> list[dict[str, str]]:
    """Non-empty, non-reserved columns as ``{key, value}`` pairs."""
    return [
        {"key": key, "value": str(value)}
        for key, value in item.items()
        if key not in RESERVED_COLUMNS and value not in (None, "")
    ]


class MetaobjectsAdapter:
    supports_delete = True

    def __init__(self, config: DataObjectConfig, shopify: ShopifyClient, sheets: SheetsClient):
        self.config = config
        self.shopify = shopify
        self.source = SheetSource(config, sheets)

    def external_id_of(self, item: SyncItem) -> str:
        return self.source.external_id_of(item)

    def type_of(self, item: SyncItem) -> str:
        return item.get("type") or self.config.settings.get("definition_type") or "custom_content"

    async def read_source(self) -> list[SyncItem]:
        return await self.source.read()

    async def write_back(self, item: SyncItem, remote_id: str) -> None:
        await self.source.write_back(item, remote_id)

    async def find_existing(self, item: SyncItem) -> str | None:
        # upserts by handle already adopt a matching metaobject
        return None

    async def adopt(self, remote_id: str, item: SyncItem) -> None:
        return None

    async def create_remote(self, item: SyncItem) -> str:
        return await self._upsert(item)

    async def is_unchanged(self, remote_id: str, item: SyncItem) -> bool:
        metaobject = await self.shopify.get_metaobject(remote_id)
        if metaobject is None:
            return False
        current = {field["key"]: field["value"] for field in metaobject.get("fields", [])}
        wanted = {field["key"]: field["value"] for field in metaobject_fields(item)}
        return shallow_equal(wanted, current, keys=wanted)

    async def update_remote(self, remote_id: str, item: SyncItem) -> None:
        await self._upsert(item)

    async def delete_remote(self, remote_id: str) -> None:
        await self.shopify.delete_metaobject(remote_id)

    async def archive_remote(self, remote_id: str) -> None:
        raise ItemProcessingError(remote_id, "Metaobjects cannot be archived")

    async def _upsert(self, item: SyncItem) -> str:
        handle = self.external_id_of(item)
        type_ = self.type_of(item)
        fields = metaobject_fields(item)
        if not fields:
            raise ItemProcessingError(
                handle, f"No fields for metaobject {handle!r}; sheet columns must match definition {type_!r}"
            )
        try:
            metaobject = await self.shopify.upsert_metaobject(type_, handle, fields)
        except RemoteAPIError as e:
            if "definition" in str(e).lower():
                raise ItemProcessingError(
                    handle, f"Metaobject definition {type_!r} not found in Shopify: {e}"
                ) from e
            raise
        logger.debug(f"Upserted metaobject {type_}/{handle} with {', '.join(f['key'] for f in fields)}")
        return metaobject["id"]
