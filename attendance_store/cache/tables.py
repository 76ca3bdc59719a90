"""
Read-through table cache.

TableCache answers "all rows of table T" and "the row of T whose key is K"
from CacheStore when it can, and from the remote store (through the
RetryExecutor) when it must. The dominant access pattern is a point lookup
by key on every incoming check-in, so after one full-table fetch every
lookup within the TTL is a dict access.

Invariants:
    - A valid entry answers reads with zero remote calls
    - Concurrent cold reads of one table share a single remote load
    - Indexed lookups return the same Row objects get_rows() returns

How to change safely:
    - Never hand out copies of cached rows; writers mutate them in place
    - Route every remote call through the RetryExecutor
"""

from __future__ import annotations

import logging
from typing import Any

from ..remote.base import RemoteStore, Row
from ..retry import RetryExecutor
from ..singleflight import SingleFlight
from .store import CacheEntry, CacheStore

logger = logging.getLogger(__name__)


class TableCache:
    """Cached, indexed reads over remote tables.

    Attributes:
        remote: Remote store backend
        retry: Executor used for every remote call
        cache: Shared cache state
        default_key_field: Key field for tables without an explicit one

    Example:
        >>> tables = TableCache(remote, retry, cache, default_key_field="TelegramId")
        >>> row = await tables.get_indexed_row("2025-01-01", "42")
    """

    def __init__(
        self,
        remote: RemoteStore,
        retry: RetryExecutor,
        cache: CacheStore,
        default_key_field: str = "TelegramId",
        key_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the table cache.

        Args:
            remote: Remote store backend
            retry: Retry executor for remote calls
            cache: Shared CacheStore
            default_key_field: Key field used when a table has no override
            key_fields: Per-table key field overrides
        """
        self.remote = remote
        self.retry = retry
        self.cache = cache
        self.default_key_field = default_key_field
        self.key_fields = dict(key_fields or {})
        self._loads: SingleFlight[CacheEntry] = SingleFlight("table-load")
        self.remote_loads = 0

    def key_field_for(self, table: str) -> str:
        return self.key_fields.get(table, self.default_key_field)

    async def load(self, table: str, force: bool = False) -> CacheEntry:
        """Get a table's cache entry, fetching it if missing or expired.

        Args:
            table: Table name
            force: Skip the cache and fetch from the remote store

        Returns:
            A valid CacheEntry
        """
        if not force:
            entry = self.cache.get(table)
            if entry is not None:
                return entry
        return await self._loads.run(table, lambda: self._fetch(table))

    async def _fetch(self, table: str) -> CacheEntry:
        header = await self.retry.execute(lambda: self.remote.load_header(table))
        rows = await self.retry.execute(lambda: self.remote.get_rows(table))
        self.remote_loads += 1
        entry = self.cache.put(table, header, rows)
        logger.debug(
            "Table loaded from remote store",
            extra={"table": table, "rows": len(rows)},
        )
        return entry

    async def get_rows(self, table: str) -> list[Row]:
        """Get all data rows of a table."""
        entry = await self.load(table)
        return entry.rows

    async def get_header(self, table: str) -> list[str]:
        entry = await self.load(table)
        return list(entry.header)

    async def get_indexed_row(
        self,
        table: str,
        key: Any,
        key_field: str | None = None,
    ) -> Row | None:
        """Look up one row by its key field.

        Args:
            table: Table name
            key: Key value (compared after str().strip())
            key_field: Override for the table's key field

        Returns:
            The cached Row, or None if no row has that key
        """
        key_field = key_field or self.key_field_for(table)
        entry = await self.load(table)
        return entry.index(key_field).get(key)

    def drop_rows(self, table: str) -> None:
        """Drop a table's cached rows immediately.

        Used only right after a table was seeded, when no writer can be
        holding its rows.
        """
        self.cache.drop_rows(table)
