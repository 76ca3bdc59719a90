"""
Unit tests for TableCache and RosterCache.

Tests cover:
- Cached reads make no remote calls
- TTL expiry triggers exactly one reload
- Indexed lookups return the cached Row objects
- Concurrent cold reads share one load
- Roster lookups by id, username and display name
"""

import asyncio

import pytest

from attendance_store.cache import CacheStore, RosterCache, TableCache
from attendance_store.remote.base import QuotaExceededError, TableNotFoundError
from attendance_store.retry import RetryExecutor

ROSTER_TABLE = "Worker info"


@pytest.fixture
def cache(clock):
    return CacheStore(table_ttl=1800, init_ttl=3600, clock=clock)


@pytest.fixture
def retry(sleep):
    return RetryExecutor(max_retries=3, initial_delay=1.0, sleep=sleep)


@pytest.fixture
def tables(remote, retry, cache):
    return TableCache(remote, retry, cache, default_key_field="TelegramId")


@pytest.fixture
def roster(remote, retry, cache):
    return RosterCache(remote, retry, cache, table=ROSTER_TABLE)


class TestTableCache:
    """Tests for TableCache."""

    @pytest.mark.asyncio
    async def test_cold_indexed_lookup(self, remote, tables):
        """Cold start: one get_rows, populated index, row found."""
        await remote.connect()

        row = await tables.get_indexed_row("2025-01-01", "emp42")

        assert row is not None
        assert row.get("Name") == "Ann Smith"
        assert remote.calls["get_rows"] == 1
        assert len(tables.cache.peek("2025-01-01").index("TelegramId")) == 2

    @pytest.mark.asyncio
    async def test_cached_reads_make_no_remote_calls(self, remote, tables):
        await remote.connect()
        await tables.get_rows("2025-01-01")
        remote.reset_calls()

        await tables.get_rows("2025-01-01")
        await tables.get_indexed_row("2025-01-01", "1001")
        await tables.get_header("2025-01-01")

        assert remote.total_calls == 0

    @pytest.mark.asyncio
    async def test_read_after_ttl_reloads_once(self, remote, tables, clock):
        await remote.connect()
        await tables.get_rows("2025-01-01")
        first_timestamp = tables.cache.peek("2025-01-01").timestamp

        clock.advance(1800)
        await tables.get_rows("2025-01-01")
        await tables.get_rows("2025-01-01")

        assert remote.calls["get_rows"] == 2
        assert tables.cache.peek("2025-01-01").timestamp > first_timestamp

    @pytest.mark.asyncio
    async def test_index_matches_manual_scan(self, remote, tables):
        await remote.connect()

        rows = await tables.get_rows("2025-01-01")
        scanned = next(row for row in rows if row.get("TelegramId") == "1001")

        assert await tables.get_indexed_row("2025-01-01", "1001") is scanned

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, remote, tables):
        await remote.connect()
        assert await tables.get_indexed_row("2025-01-01", "nobody") is None

    @pytest.mark.asyncio
    async def test_indexed_lookup_counts_one_cache_access(self, remote, tables):
        await remote.connect()

        await tables.get_indexed_row("2025-01-01", "emp42")
        assert (tables.cache.hits, tables.cache.misses) == (0, 1)

        await tables.get_indexed_row("2025-01-01", "1001")
        await tables.get_indexed_row("2025-01-01", "nobody")
        assert (tables.cache.hits, tables.cache.misses) == (2, 1)

    @pytest.mark.asyncio
    async def test_concurrent_cold_reads_share_one_load(self, remote, tables):
        remote.latency = 0.01
        await remote.connect()

        results = await asyncio.gather(
            *(tables.get_rows("2025-01-01") for _ in range(5))
        )

        assert remote.calls["get_rows"] == 1
        assert all(rows is results[0] for rows in results)

    @pytest.mark.asyncio
    async def test_load_retries_quota(self, remote, tables, sleep):
        await remote.connect()
        remote.fail_with("get_rows", QuotaExceededError("quota"), times=2)

        rows = await tables.get_rows("2025-01-01")

        assert len(rows) == 2
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_missing_table_propagates(self, remote, tables):
        await remote.connect()
        with pytest.raises(TableNotFoundError):
            await tables.get_rows("1999-01-01")

    @pytest.mark.asyncio
    async def test_failed_load_is_not_cached(self, remote, tables):
        await remote.connect()
        remote.fail_with("get_rows", RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await tables.get_rows("2025-01-01")

        assert len(await tables.get_rows("2025-01-01")) == 2

    @pytest.mark.asyncio
    async def test_key_field_override(self, remote, retry, cache):
        await remote.connect()
        tables = TableCache(remote, retry, cache, key_fields={"2025-01-01": "Name"})

        row = await tables.get_indexed_row("2025-01-01", "Bob Jones")

        assert row.get("TelegramId") == "1001"


class TestRosterCache:
    """Tests for RosterCache."""

    @pytest.mark.asyncio
    async def test_find_by_telegram_id(self, remote, roster):
        await remote.connect()

        entry = await roster.find_by_telegram_id("emp42")

        assert entry.name_full == "Ann Smith"
        assert entry.row_number == 2
        assert entry.is_registered

    @pytest.mark.asyncio
    async def test_lookups_share_one_load(self, remote, roster):
        await remote.connect()

        await roster.find_by_telegram_id("emp42")
        await roster.find_by_username("ann")
        await roster.find_by_telegram_name("Cara")
        await roster.unregistered_employees()

        assert remote.calls["get_rows"] == 1

    @pytest.mark.asyncio
    async def test_find_by_username_normalizes(self, remote, roster):
        await remote.connect()

        assert (await roster.find_by_username("bobj")).name_full == "Bob Jones"
        assert (await roster.find_by_username("@ANN")).name_full == "Ann Smith"
        assert await roster.find_by_username("") is None
        assert await roster.find_by_username("nobody") is None

    @pytest.mark.asyncio
    async def test_find_by_telegram_name_only_unregistered(self, remote, roster):
        await remote.connect()

        assert (await roster.find_by_telegram_name("cara")).name_full == "Cara Lee"
        # Ann is already registered
        assert await roster.find_by_telegram_name("Ann") is None

    @pytest.mark.asyncio
    async def test_unregistered_employees(self, remote, roster):
        await remote.connect()

        unregistered = await roster.unregistered_employees()

        assert [entry.name_full for entry in unregistered] == ["Cara Lee"]

    @pytest.mark.asyncio
    async def test_row_at(self, remote, roster):
        await remote.connect()

        row = await roster.row_at(4)

        assert row.get("Name full") == "Cara Lee"
        assert await roster.row_at(99) is None

    @pytest.mark.asyncio
    async def test_warmup_builds_index(self, remote, roster):
        await remote.connect()

        assert await roster.warmup() == 2
        remote.reset_calls()
        await roster.find_by_telegram_id("1001")
        assert remote.total_calls == 0
