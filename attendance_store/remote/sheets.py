"""
Google Sheets remote store backend.

Each table is a worksheet of one spreadsheet; row 1 holds the header and
every following row is one record. gspread is a blocking client, so each
call runs in a worker thread and the event loop keeps serving other
operations while it waits.

Invariants:
    - Worksheet handles are cached per title; list_tables() refreshes them
    - Rate-limit responses surface as QuotaExceededError
    - save_row() rewrites exactly one row, ordered by the current header

How to change safely:
    - Keep gspread calls inside _run() so they never block the loop
    - Check new gspread releases for APIError attribute changes
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import gspread
from gspread.exceptions import APIError, WorksheetNotFound
from gspread.utils import rowcol_to_a1
from google.oauth2 import service_account

from ..config import SheetsConfig
from .base import (
    QuotaExceededError,
    RemoteConnectionError,
    RemoteStoreError,
    Row,
    TableNotFoundError,
    is_quota_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Grid shape for new tables: room for a day of rows and all attendance columns
DEFAULT_ROW_COUNT = 1000
DEFAULT_COLUMN_COUNT = 35


def _api_error_status(error: APIError) -> Optional[int]:
    code = getattr(error, "code", None)
    if isinstance(code, int):
        return code
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


class GoogleSheetsRemoteStore:
    """RemoteStore backed by a Google spreadsheet through gspread.

    Attributes:
        config: Sheets configuration (spreadsheet key, credentials)

    Example:
        >>> remote = GoogleSheetsRemoteStore(SheetsConfig.from_env())
        >>> await remote.connect()
        >>> await remote.list_tables()
        ['Worker info', '2025-01-01']
    """

    def __init__(self, config: SheetsConfig) -> None:
        self.config = config
        self._client: gspread.Client | None = None
        self._spreadsheet: gspread.Spreadsheet | None = None
        self._worksheets: Dict[str, gspread.Worksheet] = {}
        self._headers: Dict[str, List[str]] = {}

    @property
    def is_connected(self) -> bool:
        return self._spreadsheet is not None

    def _authorize(self) -> gspread.Client:
        if self.config.credentials_json:
            try:
                info = json.loads(self.config.credentials_json)
            except json.JSONDecodeError as e:
                raise RemoteConnectionError(f"Invalid GOOGLE_SERVICE_ACCOUNT_JSON: {e}") from e
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=SCOPES
            )
        elif self.config.credentials_file:
            credentials = service_account.Credentials.from_service_account_file(
                self.config.credentials_file, scopes=SCOPES
            )
        else:
            raise RemoteConnectionError("No service account credentials configured")
        return gspread.authorize(credentials)

    async def connect(self) -> None:
        """Authorize and open the spreadsheet.

        Raises:
            RemoteConnectionError: If authorization or opening fails
        """
        try:
            self._client = await asyncio.to_thread(self._authorize)
            self._spreadsheet = await asyncio.to_thread(
                self._client.open_by_key, self.config.spreadsheet_id
            )
        except RemoteConnectionError:
            raise
        except Exception as e:
            raise RemoteConnectionError(f"Failed to open spreadsheet: {e}") from e

        logger.info(
            "Connected to Google Sheets",
            extra={"spreadsheet_id": self.config.spreadsheet_id},
        )

    async def close(self) -> None:
        self._worksheets.clear()
        self._headers.clear()
        self._spreadsheet = None
        self._client = None

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking gspread call in a thread, translating errors."""
        if self._spreadsheet is None:
            raise RemoteConnectionError("Not connected")
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except APIError as e:
            status = _api_error_status(e)
            if status == 429 or is_quota_error(e):
                raise QuotaExceededError(f"Sheets quota exceeded: {e}") from e
            raise RemoteStoreError(
                f"Sheets API error: {e}",
                code="SHEETS_API_ERROR",
                details={"status": status},
            ) from e

    async def _worksheet(self, table: str) -> gspread.Worksheet:
        worksheet = self._worksheets.get(table)
        if worksheet is not None:
            return worksheet
        if self._spreadsheet is None:
            raise RemoteConnectionError("Not connected")
        try:
            worksheet = await self._run(self._spreadsheet.worksheet, table)
        except WorksheetNotFound as e:
            raise TableNotFoundError(table) from e
        self._worksheets[table] = worksheet
        return worksheet

    async def _header_for(self, table: str) -> List[str]:
        header = self._headers.get(table)
        if header is None:
            header = await self.load_header(table)
        return header

    async def list_tables(self) -> List[str]:
        if self._spreadsheet is None:
            raise RemoteConnectionError("Not connected")
        worksheets = await self._run(self._spreadsheet.worksheets)
        self._worksheets = {worksheet.title: worksheet for worksheet in worksheets}
        return list(self._worksheets)

    async def create_table(self, name: str) -> None:
        if self._spreadsheet is None:
            raise RemoteConnectionError("Not connected")
        worksheet = await self._run(
            self._spreadsheet.add_worksheet,
            title=name,
            rows=DEFAULT_ROW_COUNT,
            cols=DEFAULT_COLUMN_COUNT,
        )
        self._worksheets[name] = worksheet
        logger.info("Worksheet created", extra={"table": name})

    async def load_header(self, table: str) -> List[str]:
        worksheet = await self._worksheet(table)
        values = await self._run(worksheet.row_values, 1)
        header = [str(value).strip() for value in values if str(value).strip()]
        self._headers[table] = header
        return list(header)

    async def set_header(self, table: str, fields: List[str]) -> None:
        worksheet = await self._worksheet(table)
        if len(fields) > worksheet.col_count:
            await self.resize(table, max(worksheet.row_count, DEFAULT_ROW_COUNT), len(fields))
        await self._run(worksheet.update, range_name="A1", values=[list(fields)])
        self._headers[table] = list(fields)

    async def get_rows(
        self,
        table: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        worksheet = await self._worksheet(table)
        values = await self._run(worksheet.get_all_values)
        if not values:
            return []

        header = [str(name).strip() for name in values[0]]
        end = None if limit is None else offset + limit
        rows: List[Row] = []
        for index, raw in enumerate(values[1:][offset:end], start=offset):
            record = {
                name: raw[column] if column < len(raw) else ""
                for column, name in enumerate(header)
                if name
            }
            rows.append(Row(self, table, index + 2, record))
        return rows

    async def get_raw_values(self, table: str, limit: Optional[int] = None) -> List[List[str]]:
        worksheet = await self._worksheet(table)
        if limit is None:
            return await self._run(worksheet.get_all_values)
        last_cell = rowcol_to_a1(limit, worksheet.col_count)
        return await self._run(worksheet.get_values, f"A1:{last_cell}")

    async def append_row(self, table: str, fields: Dict[str, Any]) -> Row:
        header = await self._header_for(table)
        values = ["" if fields.get(name) is None else str(fields.get(name)) for name in header]
        worksheet = await self._worksheet(table)
        result = await self._run(
            worksheet.append_row,
            values,
            value_input_option="RAW",
            table_range="A1",
        )
        row_number = _appended_row_number(result)
        return Row(self, table, row_number, dict(zip(header, values)))

    async def save_row(self, row: Row) -> None:
        header = await self._header_for(row.table)
        current = row.to_dict()
        values = [current.get(name, "") for name in header]
        worksheet = await self._worksheet(row.table)
        await self._run(
            worksheet.update,
            range_name=rowcol_to_a1(row.row_number, 1),
            values=[values],
            value_input_option="RAW",
        )

    async def resize(self, table: str, row_count: int, column_count: int) -> None:
        worksheet = await self._worksheet(table)
        await self._run(worksheet.resize, rows=row_count, cols=column_count)


def _appended_row_number(result: Any) -> int:
    """Extract the written row number from an append response.

    The response carries updates.updatedRange like "'2025-01-01'!A7:AC7".
    """
    try:
        updated_range = result["updates"]["updatedRange"]
        cell = updated_range.split("!")[-1].split(":")[0]
        return int("".join(ch for ch in cell if ch.isdigit()))
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteStoreError(
            f"Unexpected append response: {result!r}",
            code="SHEETS_API_ERROR",
        ) from e
