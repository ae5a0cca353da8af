"""Google Sheets v4 REST client.

Authenticates as a service account: a JWT assertion signed with the
account's private key is exchanged for a bearer token.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from jose import jwt

from shopsync.core.config import Settings, get_settings
from shopsync.core.exceptions import SourceAPIError
from shopsync.core.retry import RETRYABLE_STATUS_CODES, SHEETS_API_POLICY, retry_with_backoff

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


def normalize_header(header: str) -> str:
    """``"Product Type "`` -> ``"product_type"``."""
    return "_".join(str(header).strip().lower().split())


def column_letter(index: int) -> str:
    """0-based column index to A1 letters (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


@dataclass
class SheetRow:
    """A data row; ``row_index`` is the 1-based sheet row (data starts at 2)."""

    row_index: int
    values: dict[str, str] = field(default_factory=dict)


@dataclass
class SheetData:
    headers: list[str]
    rows: list[SheetRow]


class SheetsClient:
    """Async client for one spreadsheet."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        credentials: dict[str, Any] | None = None,
    ):
        self.settings = settings or get_settings()
        self.spreadsheet_id = self.settings.google_sheets_spreadsheet_id
        self._http = http_client
        self._credentials = credentials
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=30.0)
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _load_credentials(self) -> dict[str, Any]:
        if self._credentials is None:
            path = self.settings.google_service_account_file
            if not path or not Path(path).exists():
                raise SourceAPIError(f"Service account file not found: {path}")
            self._credentials = json.loads(Path(path).read_text(encoding="utf-8"))
        return self._credentials

    async def _get_token(self) -> str:
        if self._token and time.time() < self._token_expires_at - 60:
            return self._token

        creds = self._load_credentials()
        token_uri = creds.get("token_uri", DEFAULT_TOKEN_URI)
        now = int(time.time())
        assertion = jwt.encode(
            {
                "iss": creds["client_email"],
                "scope": SHEETS_SCOPE,
                "aud": token_uri,
                "iat": now,
                "exp": now + 3600,
            },
            creds["private_key"],
            algorithm="RS256",
        )
        response = await self._client().post(
            token_uri,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": assertion,
            },
        )
        if response.status_code != 200:
            raise SourceAPIError(
                f"Token request failed: {response.text[:200]}",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        body = response.json()
        self._token = body["access_token"]
        self._token_expires_at = now + int(body.get("expires_in", 3600))
        return self._token

    @retry_with_backoff(SHEETS_API_POLICY)
    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        token = await self._get_token()
        response = await self._client().request(
            method,
            f"{SHEETS_API_BASE}/{self.spreadsheet_id}{path}",
            headers={"Authorization": f"Bearer {token}"},
            **kwargs,
        )
        if response.status_code >= 400:
            raise SourceAPIError(
                f"{method} {path} -> HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        return response.json() if response.content else {}

    @staticmethod
    def _range(sheet: str, cells: str | None = None) -> str:
        name = f"'{sheet}'"
        return quote(f"{name}!{cells}" if cells else name, safe="")

    # =========================================================================
    # Reads
    # =========================================================================

    async def read_all(self, sheet: str) -> SheetData:
        """Every non-empty data row, keyed by normalized header."""
        body = await self._request("GET", f"/values/{self._range(sheet)}")
        values = body.get("values", [])
        if not values:
            return SheetData(headers=[], rows=[])

        headers = [normalize_header(h) for h in values[0]]
        rows = []
        for offset, raw in enumerate(values[1:]):
            if not any(str(cell).strip() for cell in raw):
                continue
            row_values = {
                header: str(raw[i]).strip() if i < len(raw) else ""
                for i, header in enumerate(headers)
                if header
            }
            rows.append(SheetRow(row_index=offset + 2, values=row_values))
        logger.debug(f"Read {len(rows)} rows from sheet {sheet}")
        return SheetData(headers=headers, rows=rows)

    async def find_row(
        self, sheet: str, key_field: str, key: str, data: SheetData | None = None
    ) -> SheetRow | None:
        """First row whose ``key_field`` equals ``key``. Reuses ``data`` when given."""
        if data is None:
            data = await self.read_all(sheet)
        for row in data.rows:
            if row.values.get(key_field) == key:
                return row
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    async def append_rows(self, sheet: str, rows: list[dict[str, Any]], headers: list[str] | None = None) -> None:
        """Append rows in header order, writing a header row to an empty sheet."""
        if not rows:
            return
        if headers is None:
            headers = (await self.read_all(sheet)).headers
        values = []
        if not headers:
            headers = list(rows[0].keys())
            values.append(headers)
        values.extend([_cell(row.get(h)) for h in headers] for row in rows)
        await self._request(
            "POST",
            f"/values/{self._range(sheet)}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": values},
        )

    async def update_row(
        self, sheet: str, row_index: int, values: dict[str, Any], headers: list[str]
    ) -> None:
        cells = f"A{row_index}:{column_letter(len(headers) - 1)}{row_index}"
        await self._request(
            "PUT",
            f"/values/{self._range(sheet, cells)}",
            params={"valueInputOption": "RAW"},
            json={"values": [[_cell(values.get(h)) for h in headers]]},
        )

    async def update_cell(
        self, sheet: str, row_index: int, column: str, value: Any, headers: list[str] | None = None
    ) -> None:
        """Write one cell, ``column`` being a normalized header name."""
        if headers is None:
            headers = (await self.read_all(sheet)).headers
        if column not in headers:
            raise SourceAPIError(f"Column {column!r} not found in sheet {sheet}")
        cell = f"{column_letter(headers.index(column))}{row_index}"
        await self._request(
            "PUT",
            f"/values/{self._range(sheet, cell)}",
            params={"valueInputOption": "RAW"},
            json={"values": [[_cell(value)]]},
        )

    async def batch_update(
        self, sheet: str, updates: list[tuple[int, str, Any]], headers: list[str] | None = None
    ) -> None:
        """Write several ``(row_index, column, value)`` cells in one request."""
        if not updates:
            return
        if headers is None:
            headers = (await self.read_all(sheet)).headers
        data = []
        for row_index, column, value in updates:
            if column not in headers:
                raise SourceAPIError(f"Column {column!r} not found in sheet {sheet}")
            cell = f"'{sheet}'!{column_letter(headers.index(column))}{row_index}"
            data.append({"range": cell, "values": [[_cell(value)]]})
        await self._request(
            "POST",
            "/values:batchUpdate",
            json={"valueInputOption": "RAW", "data": data},
        )

    async def upsert_row(self, sheet: str, key_field: str, values: dict[str, Any]) -> bool:
        """Update the row whose ``key_field`` matches, or append a new one.

        Returns:
            True if a row was appended
        """
        data = await self.read_all(sheet)
        row = await self.find_row(sheet, key_field, str(values.get(key_field, "")), data=data)
        if row is not None:
            merged = {**row.values, **{k: v for k, v in values.items() if v is not None}}
            await self.update_row(sheet, row.row_index, merged, data.headers)
            return False
        await self.append_rows(sheet, [values], headers=data.headers or None)
        return True


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
