"""
Process-wide cache state for remote tables.

CacheStore is constructed once at startup and injected into every
component that reads or clears cached state. It holds three kinds of
entries, all in memory and all rebuildable from the remote store:

    tables:     table name -> CacheEntry (header, rows, timestamp)
    indexes:    per CacheEntry, key field -> KeyIndex (key -> Row)
    init state: table name -> timestamp of the last "has a header" verdict

Invariants:
    - A CacheEntry is valid while now - timestamp < table_ttl
    - KeyIndexes live on their CacheEntry; clearing the entry drops them
    - Clearing a table also drops its init state
    - Nothing here is persisted; a restart starts cold

How to change safely:
    - Only the coordination components clear entries (see coordination/)
    - Keep the clock injectable; tests drive TTL expiry through it
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from ..remote.base import Row
from ..schema import normalize_key

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyIndex:
    """Map from a key field's normalized value to its Row.

    Built in one scan over a table's cached rows. When several rows share
    a key the first one wins, matching a top-down sheet scan.
    """

    def __init__(self, key_field: str) -> None:
        self.key_field = key_field
        self._rows: dict[str, Row] = {}

    @classmethod
    def build(cls, key_field: str, rows: Iterable[Row]) -> KeyIndex:
        index = cls(key_field)
        for row in rows:
            key = normalize_key(row.get(key_field))
            if key and key not in index._rows:
                index._rows[key] = row
        return index

    def get(self, key: Any) -> Row | None:
        return self._rows.get(normalize_key(key))

    def __contains__(self, key: Any) -> bool:
        return normalize_key(key) in self._rows

    def __len__(self) -> int:
        return len(self._rows)


@dataclass
class CacheEntry:
    """Cached contents of one table.

    Attributes:
        header: Header row at load time
        rows: Row objects, shared with every reader until invalidated
        timestamp: Clock reading when the rows were loaded
        indexes: Key indexes built from these rows, by key field
    """

    header: list[str]
    rows: list[Row]
    timestamp: float
    indexes: dict[str, KeyIndex] = field(default_factory=dict)

    def index(self, key_field: str) -> KeyIndex:
        """Get the index for a key field, building it on first use."""
        index = self.indexes.get(key_field)
        if index is None:
            index = KeyIndex.build(key_field, self.rows)
            self.indexes[key_field] = index
        return index

    def add_row(self, row: Row) -> None:
        """Append a row written by this process; indexes rebuild on next use."""
        self.rows.append(row)
        self.indexes.clear()

    def reset_indexes(self) -> None:
        self.indexes.clear()


class CacheStore:
    """In-memory table cache, key indexes and initialization state.

    Attributes:
        table_ttl: Seconds a table's cached rows stay valid
        init_ttl: Seconds an "initialized" verdict stays valid

    Example:
        >>> cache = CacheStore(table_ttl=1800, init_ttl=3600)
        >>> cache.put("2025-01-01", header, rows)
        >>> entry = cache.get("2025-01-01")
    """

    def __init__(
        self,
        table_ttl: float = 1800.0,
        init_ttl: float = 3600.0,
        clock: Clock | None = None,
    ) -> None:
        self.table_ttl = table_ttl
        self.init_ttl = init_ttl
        self.clock = clock or time.monotonic
        self._tables: dict[str, CacheEntry] = {}
        self._initialized: dict[str, float] = {}
        self.hits = 0
        self.misses = 0

    def get(self, table: str) -> CacheEntry | None:
        """Return the table's entry if still valid, else None."""
        entry = self._tables.get(table)
        if entry is not None and self.clock() - entry.timestamp < self.table_ttl:
            self.hits += 1
            return entry
        if entry is not None:
            del self._tables[table]
            logger.debug("Cache entry expired", extra={"table": table})
        self.misses += 1
        return None

    def peek(self, table: str) -> CacheEntry | None:
        """Return the table's entry without TTL checks or hit accounting."""
        return self._tables.get(table)

    def put(self, table: str, header: list[str], rows: list[Row]) -> CacheEntry:
        entry = CacheEntry(header=list(header), rows=rows, timestamp=self.clock())
        self._tables[table] = entry
        return entry

    def is_initialized(self, table: str) -> bool:
        timestamp = self._initialized.get(table)
        if timestamp is None:
            return False
        if self.clock() - timestamp < self.init_ttl:
            return True
        del self._initialized[table]
        return False

    def mark_initialized(self, table: str) -> None:
        self._initialized[table] = self.clock()

    def clear_table(self, table: str) -> bool:
        """Drop a table's rows, indexes and init state.

        Returns:
            True if anything was cached for the table
        """
        had_rows = self._tables.pop(table, None) is not None
        had_init = self._initialized.pop(table, None) is not None
        if had_rows or had_init:
            logger.debug("Cache cleared for table", extra={"table": table})
        return had_rows or had_init

    def drop_rows(self, table: str) -> None:
        """Drop a table's cached rows and indexes, keeping its init state."""
        self._tables.pop(table, None)

    def clear_all(self) -> None:
        count = len(self._tables)
        self._tables.clear()
        self._initialized.clear()
        logger.info("All caches cleared", extra={"tables": count})

    def cached_tables(self) -> list[str]:
        return list(self._tables)

    def stats(self) -> dict[str, Any]:
        return {
            "tables": len(self._tables),
            "rows": sum(len(entry.rows) for entry in self._tables.values()),
            "indexed_keys": sum(
                len(index)
                for entry in self._tables.values()
                for index in entry.indexes.values()
            ),
            "initialized_tables": len(self._initialized),
            "hits": self.hits,
            "misses": self.misses,
            "table_ttl_seconds": self.table_ttl,
        }
