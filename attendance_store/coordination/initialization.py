"""
Once-only table initialization.

Tables are created lazily: the first operation touching a new daily table
creates it, writes its header and seeds one row per employee. Under
interleaving, several operations can reach that point together; under a
quota outage, the checks deciding "does this table already exist" can
fail. Either case could re-seed a live table and duplicate its rows.

Algorithm (ensure_initialized):
    1. A fresh "initialized" verdict in CacheStore answers immediately
    2. A call already in flight for the table is joined, not repeated
    3. Otherwise verify: read the header; if it is empty or unreadable,
       probe raw cells for data
    4. Header present, or data present without a header: initialized
    5. Both checks failed on quota: state unknown, return False
    6. Table absent: create it; no header and no data: run schema_fn

Invariants:
    - schema_fn runs at most once per table per verification window
    - An inconclusive verification never leads to schema creation
    - The per-table flight is released on every exit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from ..cache.store import CacheStore
from ..remote.base import QuotaExceededError, RemoteStore, Row, TableNotFoundError
from ..retry import RetryExecutor
from ..singleflight import SingleFlight

logger = logging.getLogger(__name__)

# Rows probed when the header is empty or unreadable
PROBE_ROWS = 2


class TableState(Enum):
    """Outcome of verifying a table against the remote store."""

    PRESENT = "present"
    DATA_WITHOUT_HEADER = "data_without_header"
    EMPTY = "empty"
    ABSENT = "absent"
    UNKNOWN = "unknown"


@dataclass
class TableSetup:
    """Handle given to schema functions; every call goes through the retry executor.

    Attributes:
        table: Table being initialized
        created: Whether the table was created by this initialization
    """

    table: str
    remote: RemoteStore
    retry: RetryExecutor
    created: bool = False

    async def set_header(self, fields: list[str]) -> None:
        await self.retry.execute(lambda: self.remote.set_header(self.table, fields))

    async def append_row(self, fields: dict[str, Any]) -> Row:
        return await self.retry.execute(lambda: self.remote.append_row(self.table, fields))

    async def resize(self, row_count: int, column_count: int) -> None:
        await self.retry.execute(
            lambda: self.remote.resize(self.table, row_count, column_count)
        )


SchemaFn = Callable[[TableSetup], Awaitable[None]]


class InitializationCoordinator:
    """Ensures each table's schema and seed rows are created at most once.

    Example:
        >>> async def daily_schema(setup: TableSetup) -> None:
        ...     await setup.set_header(list(DAILY_SCHEMA.headers))
        ...     await setup.append_row(daily_seed_row("Ann", "42"))
        >>> ok = await coordinator.ensure_initialized("2025-01-01", daily_schema)
    """

    def __init__(
        self,
        remote: RemoteStore,
        retry: RetryExecutor,
        cache: CacheStore,
    ) -> None:
        self.remote = remote
        self.retry = retry
        self.cache = cache
        self._flights: SingleFlight[bool] = SingleFlight("table-init")
        self.schema_runs = 0
        self.deferred_count = 0

    def in_progress(self, table: str) -> bool:
        return self._flights.in_flight(table)

    async def ensure_initialized(self, table: str, schema_fn: SchemaFn) -> bool:
        """Make sure a table exists with its header and seed rows.

        Args:
            table: Table name
            schema_fn: Writes the header and seed rows of a new table

        Returns:
            True if the table is initialized; False if its state could not
            be verified (the caller should retry later)

        Raises:
            QuotaExceededError: If creating the table hit the quota
            RemoteStoreError: For non-quota remote failures
        """
        if self.cache.is_initialized(table):
            return True
        return await self._flights.run(table, lambda: self._initialize(table, schema_fn))

    async def _initialize(self, table: str, schema_fn: SchemaFn) -> bool:
        state = await self.verify(table)

        if state in (TableState.PRESENT, TableState.DATA_WITHOUT_HEADER):
            if state is TableState.DATA_WITHOUT_HEADER:
                logger.warning(
                    "Table has data but no readable header; treating as initialized",
                    extra={"table": table},
                )
            self.cache.mark_initialized(table)
            return True

        if state is TableState.UNKNOWN:
            self.deferred_count += 1
            logger.warning(
                "Table state unknown under quota pressure; initialization deferred",
                extra={"table": table},
            )
            return False

        setup = TableSetup(table=table, remote=self.remote, retry=self.retry)
        if state is TableState.ABSENT:
            await self.retry.execute(lambda: self.remote.create_table(table))
            setup.created = True

        await schema_fn(setup)
        self.schema_runs += 1

        self.cache.drop_rows(table)
        self.cache.mark_initialized(table)
        logger.info(
            "Table initialized",
            extra={"table": table, "created": setup.created},
        )
        return True

    async def verify(self, table: str) -> TableState:
        """Classify a table by reading its header, then probing its cells."""
        header_failed = False
        try:
            header = await self.retry.execute(lambda: self.remote.load_header(table))
            if header:
                return TableState.PRESENT
        except TableNotFoundError:
            return TableState.ABSENT
        except QuotaExceededError as e:
            header_failed = True
            logger.warning(
                "Header check failed on quota; probing cells",
                extra={"table": table, "error": str(e)},
            )

        try:
            raw = await self.retry.execute(
                lambda: self.remote.get_raw_values(table, limit=PROBE_ROWS)
            )
        except TableNotFoundError:
            return TableState.ABSENT
        except QuotaExceededError as e:
            logger.warning(
                "Data presence probe failed on quota",
                extra={"table": table, "header_failed": header_failed, "error": str(e)},
            )
            return TableState.UNKNOWN

        if any(str(cell).strip() for values in raw for cell in values):
            return TableState.DATA_WITHOUT_HEADER
        return TableState.EMPTY
