"""
AttendanceStore - the consistency and caching layer's public surface.

Application code (attendance handlers, reminder scans) talks only to this
class. It wires the cache, coordination and retry components around one
RemoteStore and exposes the read and write entry points:

    get_rows(table)                    cached full-table read
    get_indexed_row(table, key)        cached point lookup
    ensure_initialized(table, fn)      once-only schema and seed rows
    mutate_row(table, key, fn)         tracked, retried single-row write
    invalidate_all()                   cold reset

Write path (mutate_row):
    1. Dedup: an event key applied within the window is acknowledged as
       DUPLICATE without touching the store; a repeat of an event still in
       flight waits for it and reports DUPLICATE only if it applied
    2. ensure_initialized; an unverifiable table yields DEFERRED
    3. start_operation(table)
    4. get_indexed_row; on a daily table miss, missing roster employees
       are appended once and the lookup repeated; still missing is NOT_FOUND
    5. mutate_fn(row), then row.save() through the RetryExecutor; on
       failure the cached row gets its previous values back
    6. end_operation(table), which arms a delayed invalidation

Invariants:
    - Every write is bracketed by the OperationTracker on all exit paths
    - A dedup claim survives only if the write was applied
    - A failed write leaves the cached row as it was
    - Not-found and deferred outcomes are results, not exceptions
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence, Union

from .cache.roster import RosterCache
from .cache.store import Clock, CacheStore
from .cache.tables import TableCache
from .config import RemoteBackend, StoreConfig
from .coordination.initialization import InitializationCoordinator, SchemaFn
from .coordination.invalidation import InvalidationScheduler
from .coordination.tracker import OperationTracker
from .daily import daily_schema_fn, daily_table_name, missing_employees, seed_roster_table
from .dedup import DedupWindow
from .remote.base import RemoteStore, RemoteStoreError, Row, create_remote_store
from .retry import RetryExecutor, Sleep
from .schema import DAILY_SCHEMA, ROSTER_SCHEMA, daily_seed_row, normalize_key
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

MutateFn = Callable[[Row], Union[None, Awaitable[None]]]


class MutationStatus(Enum):
    """Outcome of a mutate_row call."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    DEFERRED = "deferred"


@dataclass
class MutationResult:
    """Result of a single-row write.

    Attributes:
        status: What happened
        table: Target table
        key: Key the row was looked up by
        row: The saved row (APPLIED only)
    """

    status: MutationStatus
    table: str
    key: str
    row: Row | None = None

    @property
    def success(self) -> bool:
        """True when the caller may treat the event as applied."""
        return self.status in (MutationStatus.APPLIED, MutationStatus.DUPLICATE)


class AttendanceStore:
    """Cached, coordinated access to the attendance tables.

    Attributes:
        config: Store configuration
        remote: Remote store backend
        cache: Shared cache state
        retry: Quota retry executor
        tracker: In-flight write counters
        invalidation: Delayed invalidation scheduler
        initializer: Once-only table initialization
        tables: Cache for daily (and any other) tables
        roster: Cache for the roster table
        dedup: Duplicate event window

    Example:
        >>> store = AttendanceStore.from_config(StoreConfig.from_env())
        >>> await store.connect()
        >>> result = await store.mutate_row(
        ...     "2025-01-01", "42",
        ...     lambda row: row.set("When come", "09:01:12"),
        ...     event_key="arrive:42:2025-01-01",
        ... )
        >>> result.status
        <MutationStatus.APPLIED: 'applied'>
    """

    def __init__(
        self,
        remote: RemoteStore,
        config: StoreConfig | None = None,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        """Wire all components around one remote store.

        Args:
            remote: Remote store backend (connected by connect())
            config: Store configuration (in-memory defaults if omitted)
            clock: Monotonic clock for TTLs and the dedup window
            sleep: Awaitable sleep for retry backoff
        """
        self.config = config or StoreConfig(remote_backend=RemoteBackend.MEMORY)
        self.remote = remote

        cache_config = self.config.cache
        roster_table = self.config.sheets.roster_table

        self.cache = CacheStore(
            table_ttl=cache_config.table_ttl_seconds,
            init_ttl=cache_config.init_ttl_seconds,
            clock=clock,
        )
        self.retry = RetryExecutor(
            max_retries=self.config.retry.max_retries,
            initial_delay=self.config.retry.initial_delay_seconds,
            sleep=sleep,
        )
        self.tracker = OperationTracker()
        self.invalidation = InvalidationScheduler(
            self.cache,
            self.tracker,
            delay=cache_config.invalidation_delay_seconds,
        )
        self.initializer = InitializationCoordinator(remote, self.retry, self.cache)
        self.tables = TableCache(
            remote,
            self.retry,
            self.cache,
            default_key_field=DAILY_SCHEMA.key_field,
        )
        self.roster = RosterCache(remote, self.retry, self.cache, table=roster_table)
        self.dedup = DedupWindow(
            window_seconds=cache_config.dedup_window_seconds,
            capacity=cache_config.dedup_capacity,
            clock=clock,
        )
        self._events: SingleFlight[MutationResult] = SingleFlight("event")
        self._syncs: SingleFlight[int] = SingleFlight("daily-sync")

    @classmethod
    def from_config(
        cls,
        config: StoreConfig,
        remote: RemoteStore | None = None,
    ) -> AttendanceStore:
        """Build a store, creating the remote backend from config if not given."""
        return cls(remote or create_remote_store(config), config)

    async def connect(self) -> None:
        if not self.remote.is_connected:
            await self.remote.connect()

    async def close(self) -> None:
        """Cancel pending invalidations and release the remote backend."""
        self.invalidation.cancel_all()
        await self.remote.close()

    async def __aenter__(self) -> AttendanceStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _cache_for(self, table: str) -> TableCache:
        if table == self.roster.table:
            return self.roster
        return self.tables

    # -- reads ---------------------------------------------------------------

    async def get_rows(self, table: str) -> list[Row]:
        """All rows of a table, from cache when valid."""
        return await self._cache_for(table).get_rows(table)

    async def get_indexed_row(self, table: str, key: Any) -> Row | None:
        """The row of `table` whose key field equals `key`, or None."""
        return await self._cache_for(table).get_indexed_row(table, key)

    # -- initialization ------------------------------------------------------

    def default_schema_fn(self, table: str) -> SchemaFn:
        if table == self.roster.table:
            return seed_roster_table
        return daily_schema_fn(self.roster)

    async def ensure_initialized(self, table: str, schema_fn: SchemaFn | None = None) -> bool:
        """Make sure a table has its header and seed rows.

        Args:
            table: Table name
            schema_fn: Schema function; daily seeding from the roster if omitted

        Returns:
            False if the table's state could not be verified; retry later
        """
        return await self.initializer.ensure_initialized(
            table, schema_fn or self.default_schema_fn(table)
        )

    # -- writes --------------------------------------------------------------

    async def mutate_row(
        self,
        table: str,
        key: Any,
        mutate_fn: MutateFn,
        *,
        schema_fn: SchemaFn | None = None,
        event_key: str | None = None,
    ) -> MutationResult:
        """Apply a mutation to one row and persist it.

        Args:
            table: Target table
            key: Value of the table's key field
            mutate_fn: Mutates the Row in place; may be a coroutine function
            schema_fn: Schema function if the table may need initializing
            event_key: Logical event id for duplicate suppression

        Returns:
            MutationResult; APPLIED, DUPLICATE, NOT_FOUND or DEFERRED

        Raises:
            QuotaExceededError: If the save exhausted its retries
            RemoteStoreError: For non-quota remote failures
        """
        key = normalize_key(key)
        if event_key is None:
            return await self._apply(table, key, mutate_fn, schema_fn)

        owned = False

        async def apply_event() -> MutationResult:
            nonlocal owned
            owned = True
            if not self.dedup.claim(event_key):
                logger.info(
                    "Duplicate event suppressed",
                    extra={"table": table, "key": key, "event_key": event_key},
                )
                return MutationResult(MutationStatus.DUPLICATE, table, key)

            applied = False
            try:
                result = await self._apply(table, key, mutate_fn, schema_fn)
                applied = result.status is MutationStatus.APPLIED
                return result
            finally:
                if not applied:
                    self.dedup.release(event_key)

        # A repeat of an event still being applied shares its outcome
        result = await self._events.run(event_key, apply_event)
        if not owned and result.status is MutationStatus.APPLIED:
            logger.info(
                "Duplicate event suppressed",
                extra={"table": table, "key": key, "event_key": event_key},
            )
            return MutationResult(MutationStatus.DUPLICATE, table, key, result.row)
        return result

    async def _apply(
        self,
        table: str,
        key: str,
        mutate_fn: MutateFn,
        schema_fn: SchemaFn | None,
    ) -> MutationResult:
        if not await self.ensure_initialized(table, schema_fn):
            return MutationResult(MutationStatus.DEFERRED, table, key)

        cache = self._cache_for(table)
        key_field = cache.key_field_for(table)

        with self.tracker.track(table):
            row = await cache.get_indexed_row(table, key)
            if row is None and cache is self.tables and schema_fn is None:
                # Seeding may have stopped part way; add missing employees
                if await self._sync_table(table):
                    row = await cache.get_indexed_row(table, key)
            if row is None:
                logger.info("Row not found", extra={"table": table, "key": key})
                return MutationResult(MutationStatus.NOT_FOUND, table, key)

            snapshot = row.to_dict()
            try:
                outcome = mutate_fn(row)
                if inspect.isawaitable(outcome):
                    await outcome
                await self.retry.execute(row.save)
            except BaseException:
                row.restore(snapshot)
                raise

            if normalize_key(row.get(key_field)) != key:
                self._reset_indexes(table)

        logger.debug("Row mutated", extra={"table": table, "key": key})
        return MutationResult(MutationStatus.APPLIED, table, key, row)

    async def batch_save_rows(self, table: str, rows: Sequence[Row]) -> int:
        """Save already-mutated rows one by one under a single tracked operation.

        Returns:
            Number of rows saved
        """
        if not rows:
            return 0

        with self.tracker.track(table):
            for row in rows:
                await self.retry.execute(row.save)
            self._reset_indexes(table)

        logger.info("Batch saved rows", extra={"table": table, "rows": len(rows)})
        return len(rows)

    def _reset_indexes(self, table: str) -> None:
        entry = self.cache.peek(table)
        if entry is not None:
            entry.reset_indexes()

    # -- invalidation --------------------------------------------------------

    def invalidate(self, table: str) -> None:
        """Schedule a delayed invalidation of one table."""
        self.invalidation.invalidate(table)

    def invalidate_all(self) -> None:
        """Clear every cache immediately."""
        self.invalidation.invalidate(None)

    # -- roster --------------------------------------------------------------

    async def register_employee(self, row_number: int, telegram_id: Any) -> bool:
        """Store a Telegram id on a roster row.

        Args:
            row_number: Sheet row number of the employee
            telegram_id: Telegram user id to record

        Returns:
            False if the roster has no such row
        """
        table = self.roster.table
        with self.tracker.track(table):
            row = await self.roster.row_at(row_number)
            if row is None:
                logger.warning(
                    "Roster row not found for registration",
                    extra={"row_number": row_number},
                )
                return False
            row.set(ROSTER_SCHEMA.key_field, normalize_key(telegram_id))
            await self.retry.execute(row.save)
            self._reset_indexes(table)

        logger.info(
            "Employee registered",
            extra={"row_number": row_number, "telegram_id": normalize_key(telegram_id)},
        )
        return True

    # -- daily tables --------------------------------------------------------

    def daily_table_name(self, day: date | datetime | None = None) -> str:
        return daily_table_name(day, self.config.sheets.timezone)

    async def initialize_daily_table(self, day: date | datetime | None = None) -> bool:
        """Initialize a day's table and add any roster employees it lacks.

        Returns:
            False if initialization was deferred
        """
        table = self.daily_table_name(day)
        if not await self.ensure_initialized(table, daily_schema_fn(self.roster)):
            return False
        await self.sync_daily_roster(day)
        return True

    async def sync_daily_roster(self, day: date | datetime | None = None) -> int:
        """Append seed rows for roster employees missing from a daily table.

        Returns:
            Number of rows added
        """
        return await self._sync_table(self.daily_table_name(day))

    async def _sync_table(self, table: str) -> int:
        return await self._syncs.run(table, lambda: self._append_missing(table))

    async def _append_missing(self, table: str) -> int:
        employees = await self.roster.entries()
        entry = await self.tables.load(table)
        missing = missing_employees(entry.rows, employees)
        if not missing:
            return 0

        with self.tracker.track(table):
            for employee in missing:
                fields = daily_seed_row(employee.name_full, employee.telegram_id)
                row = await self.retry.execute(
                    lambda fields=fields: self.remote.append_row(table, fields)
                )
                entry.add_row(row)

        logger.info(
            "New employees added to daily table",
            extra={"table": table, "added": len(missing)},
        )
        return len(missing)

    # -- maintenance ---------------------------------------------------------

    async def warmup(self) -> bool:
        """Preload the roster and today's table with their indexes.

        Returns:
            False if the remote store failed during warmup
        """
        today = self.daily_table_name()
        try:
            employees = await self.roster.warmup()
            tables = await self.retry.execute(self.remote.list_tables)
            daily_keys = 0
            if today in tables:
                entry = await self.tables.load(today)
                daily_keys = len(entry.index(DAILY_SCHEMA.key_field))
        except RemoteStoreError as e:
            logger.error(
                "Cache warmup failed",
                extra={"error": str(e), "code": e.code},
                exc_info=True,
            )
            return False

        logger.info(
            "Cache warmed up",
            extra={"roster_keys": employees, "daily_table": today, "daily_keys": daily_keys},
        )
        return True

    def cache_stats(self) -> dict[str, Any]:
        """Snapshot of cache and coordination state."""
        roster_entry = self.cache.peek(self.roster.table)
        return {
            "cache": self.cache.stats(),
            "cached_tables": self.cache.cached_tables(),
            "roster_size": len(roster_entry.rows) if roster_entry is not None else 0,
            "busy_tables": self.tracker.busy_tables(),
            "pending_invalidations": self.invalidation.pending_tables(),
            "invalidation": self.invalidation.stats(),
            "initialization": {
                "schema_runs": self.initializer.schema_runs,
                "deferred": self.initializer.deferred_count,
            },
            "retry": {
                "retries": self.retry.retry_count,
                "exhausted": self.retry.exhausted_count,
            },
            "remote_loads": self.tables.remote_loads + self.roster.remote_loads,
            "dedup": {
                "remembered": len(self.dedup),
                "suppressed": self.dedup.suppressed_count,
            },
        }
