"""Sheet-backed source snapshot shared by push adapters."""

import logging

from shopsync.api.services.sheets_client import SheetsClient
from shopsync.core.data_objects import DataObjectConfig
from shopsync.core.sync.delta import SyncItem

logger = logging.getLogger(__name__)

REMOTE_ID_COLUMN = "shopify_id"


class SheetSource:
    """Reads a sheet as SyncItems and writes remote ids back to it."""

    def __init__(self, config: DataObjectConfig, sheets: SheetsClient):
        self.config = config
        self.sheets = sheets
        self.headers: list[str] = []

    def external_id_of(self, item: SyncItem) -> str:
        return str(item.get(self.config.external_id_field) or "").strip()

    async def read(self) -> list[SyncItem]:
        data = await self.sheets.read_all(self.config.sheet_name)
        self.headers = data.headers
        return [{**row.values, "row_index": row.row_index} for row in data.rows]

    async def write_back(self, item: SyncItem, remote_id: str) -> None:
        """Record ``remote_id`` in the row's shopify_id column, if it has one."""
        if item.get(REMOTE_ID_COLUMN) == remote_id:
            return
        if REMOTE_ID_COLUMN not in self.headers:
            logger.debug(f"Sheet {self.config.sheet_name} has no {REMOTE_ID_COLUMN} column")
            return
        await self.sheets.update_cell(
            self.config.sheet_name,
            item["row_index"],
            REMOTE_ID_COLUMN,
            remote_id,
            headers=self.headers,
        )


def column(item: SyncItem, *names: str) -> str:
    """First non-empty value among ``names``, stripped."""
    for name in names:
        value = item.get(name)
        if value not in (None, ""):
            return str(value).strip()
    return ""
