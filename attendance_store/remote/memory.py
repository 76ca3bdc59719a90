"""
In-memory remote store implementation for testing.

This module provides a dict-backed remote store for:
- Unit tests
- Integration tests
- Local development without spreadsheet credentials

Invariants:
    - All data is lost on process exit
    - Every call is a suspension point, like a real network call
    - Row.save() writes exactly one row, like the sheets backend

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with RemoteStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from .base import (
    RemoteConnectionError,
    Row,
    TableNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class InMemoryTable:
    """In-memory table storage."""
    header: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)
    row_count: int = 1000
    column_count: int = 35


@dataclass
class _InjectedFailure:
    error: BaseException
    remaining: Optional[int]


class InMemoryRemoteStore:
    """In-memory implementation of RemoteStore for testing.

    Attributes:
        latency: Seconds each call sleeps before running (0 still yields)
        calls: Counter of calls per method name

    Failure injection:
        fail_with("get_rows", QuotaExceededError("..."), times=2) makes the
        next two get_rows calls raise; times=None fails until cleared.

    Example:
        >>> remote = InMemoryRemoteStore()
        >>> await remote.connect()
        >>> remote.seed_table("Worker info", ["Name full", "Telegram Id"], [
        ...     {"Name full": "Ann", "Telegram Id": "42"},
        ... ])
        >>> rows = await remote.get_rows("Worker info")
    """

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize in-memory remote store.

        Args:
            latency: Simulated per-call latency in seconds
        """
        self.latency = latency
        self.calls: Counter[str] = Counter()
        self._tables: Dict[str, InMemoryTable] = {}
        self._failures: Dict[str, _InjectedFailure] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryRemoteStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._tables.clear()
        self._failures.clear()
        logger.debug("InMemoryRemoteStore closed")

    async def _call(self, method: str) -> None:
        if not self._connected:
            raise RemoteConnectionError("Not connected")

        self.calls[method] += 1
        await asyncio.sleep(self.latency)

        failure = self._failures.get(method)
        if failure is not None:
            if failure.remaining is not None:
                failure.remaining -= 1
                if failure.remaining <= 0:
                    del self._failures[method]
            raise failure.error

    def _table(self, name: str) -> InMemoryTable:
        table = self._tables.get(name)
        if table is None:
            raise TableNotFoundError(name)
        return table

    async def list_tables(self) -> List[str]:
        await self._call("list_tables")
        return list(self._tables)

    async def create_table(self, name: str) -> None:
        await self._call("create_table")
        if name in self._tables:
            logger.warning("Table already exists", extra={"table": name})
            return
        self._tables[name] = InMemoryTable()
        logger.debug("Table created", extra={"table": name})

    async def load_header(self, table: str) -> List[str]:
        await self._call("load_header")
        return list(self._table(table).header)

    async def set_header(self, table: str, fields: List[str]) -> None:
        await self._call("set_header")
        self._table(table).header = list(fields)

    async def get_rows(
        self,
        table: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        await self._call("get_rows")
        data = self._table(table)
        end = None if limit is None else offset + limit
        return [
            Row(self, table, index + 2, values)
            for index, values in enumerate(data.rows[offset:end], start=offset)
        ]

    async def get_raw_values(self, table: str, limit: Optional[int] = None) -> List[List[str]]:
        await self._call("get_raw_values")
        data = self._table(table)
        raw: List[List[str]] = []
        if data.header:
            raw.append(list(data.header))
        for values in data.rows:
            raw.append([values.get(name, "") for name in data.header] or list(values.values()))
        return raw if limit is None else raw[:limit]

    async def append_row(self, table: str, fields: Dict[str, Any]) -> Row:
        await self._call("append_row")
        data = self._table(table)
        values = {
            name: "" if fields.get(name) is None else str(fields.get(name))
            for name in data.header
        }
        data.rows.append(values)
        return Row(self, table, len(data.rows) + 1, values)

    async def save_row(self, row: Row) -> None:
        await self._call("save_row")
        data = self._table(row.table)
        index = row.row_number - 2
        if index < 0 or index >= len(data.rows):
            raise TableNotFoundError(f"{row.table}!row{row.row_number}")
        current = row.to_dict()
        data.rows[index] = {name: current.get(name, "") for name in data.header}

    async def resize(self, table: str, row_count: int, column_count: int) -> None:
        await self._call("resize")
        data = self._table(table)
        data.row_count = row_count
        data.column_count = column_count

    # Testing helpers

    def seed_table(
        self,
        name: str,
        header: List[str],
        rows: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """Create or replace a table directly, without counting calls."""
        self._tables[name] = InMemoryTable(
            header=list(header),
            rows=[
                {field_name: str(values.get(field_name, "")) for field_name in header}
                for values in rows or []
            ],
        )

    def seed_raw_rows(self, name: str, raw_rows: List[List[str]]) -> None:
        """Create a table whose cells hold data but whose header is unreadable.

        Models a sheet where header detection failed but rows exist.
        """
        table = InMemoryTable()
        table.rows = [
            {str(column): value for column, value in enumerate(raw)} for raw in raw_rows
        ]
        self._tables[name] = table

    def table_rows(self, name: str) -> List[Dict[str, str]]:
        """Get a copy of a table's stored rows (testing helper)."""
        return [dict(values) for values in self._table(name).rows]

    def table_header(self, name: str) -> List[str]:
        """Get a table's stored header (testing helper)."""
        return list(self._table(name).header)

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def fail_with(
        self,
        method: str,
        error: BaseException,
        times: Optional[int] = 1,
    ) -> None:
        """Make upcoming calls to a method raise an error.

        Args:
            method: RemoteStore method name (e.g. "get_rows")
            error: Exception instance to raise
            times: Number of calls to fail, or None to fail until cleared
        """
        self._failures[method] = _InjectedFailure(error=error, remaining=times)

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset_calls(self) -> None:
        self.calls.clear()

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())
