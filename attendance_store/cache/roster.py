"""
Roster (employee directory) cache.

The roster is a single, slowly changing table read on nearly every
operation: check-ins resolve the employee, reminder scans walk all of
them, registration looks up unregistered names. RosterCache is a
TableCache pinned to that one table, indexed by Telegram id, and decoding
rows into RosterEntry records.

Invariants:
    - Lookups by Telegram id use the key index (O(1) within the TTL)
    - Username and display-name lookups scan cached rows, never the remote
    - Entries are decoded from the cached rows on each call; they are
      snapshots, mutate the Row through the write path instead
"""

from __future__ import annotations

import logging
from typing import Any

from ..remote.base import RemoteStore, Row
from ..retry import RetryExecutor
from ..schema import ROSTER_SCHEMA, RosterEntry
from .store import CacheStore
from .tables import TableCache

logger = logging.getLogger(__name__)


class RosterCache(TableCache):
    """TableCache specialized for the roster table.

    Attributes:
        table: Roster table name

    Example:
        >>> roster = RosterCache(remote, retry, cache, table="Worker info")
        >>> entry = await roster.find_by_telegram_id(123456789)
        >>> entry.name_full
        'Ann Smith'
    """

    def __init__(
        self,
        remote: RemoteStore,
        retry: RetryExecutor,
        cache: CacheStore,
        table: str = "Worker info",
    ) -> None:
        super().__init__(
            remote,
            retry,
            cache,
            default_key_field=ROSTER_SCHEMA.key_field,
            key_fields={table: ROSTER_SCHEMA.key_field},
        )
        self.table = table

    async def rows(self) -> list[Row]:
        return await self.get_rows(self.table)

    async def entries(self) -> list[RosterEntry]:
        """All roster employees as typed records."""
        return [RosterEntry.from_row(row) for row in await self.rows()]

    async def row_by_telegram_id(self, telegram_id: Any) -> Row | None:
        return await self.get_indexed_row(self.table, telegram_id)

    async def row_at(self, row_number: int) -> Row | None:
        for row in await self.rows():
            if row.row_number == row_number:
                return row
        return None

    async def find_by_telegram_id(self, telegram_id: Any) -> RosterEntry | None:
        row = await self.row_by_telegram_id(telegram_id)
        if row is None:
            return None
        return RosterEntry.from_row(row)

    async def find_by_username(self, username: str | None) -> RosterEntry | None:
        """Find an employee by Telegram username, with or without "@"."""
        if not username:
            return None
        if not username.startswith("@"):
            username = f"@{username}"
        wanted = username.lower()

        for entry in await self.entries():
            if entry.telegram_username.lower() == wanted:
                return entry
        return None

    async def find_by_telegram_name(self, first_name: str | None) -> RosterEntry | None:
        """Find an unregistered employee by Telegram display name."""
        if not first_name:
            return None
        wanted = first_name.strip().lower()

        for entry in await self.entries():
            if entry.telegram_name.lower() == wanted and not entry.is_registered:
                return entry
        return None

    async def unregistered_employees(self) -> list[RosterEntry]:
        return [entry for entry in await self.entries() if not entry.is_registered]

    async def warmup(self) -> int:
        """Load the roster and build its Telegram id index.

        Returns:
            Number of indexed employees
        """
        entry = await self.load(self.table)
        return len(entry.index(ROSTER_SCHEMA.key_field))
