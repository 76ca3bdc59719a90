"""
Unit tests for OperationTracker and InvalidationScheduler.

Tests cover:
- Counter bracketing, including error paths and underflow
- Delayed invalidation and cancel-and-replace coalescing
- Invalidation deferral while a table is busy
- Cold reset
"""

import asyncio
import logging

import pytest

from attendance_store.cache.store import CacheStore
from attendance_store.coordination import InvalidationScheduler, OperationTracker

DELAY = 0.02


@pytest.fixture
def cache():
    return CacheStore()


@pytest.fixture
def tracker():
    return OperationTracker()


@pytest.fixture
def scheduler(cache, tracker):
    return InvalidationScheduler(cache, tracker, delay=DELAY)


async def settle(multiple=3):
    await asyncio.sleep(DELAY * multiple)


class TestOperationTracker:
    """Tests for OperationTracker."""

    def test_start_and_end(self, tracker):
        assert tracker.start_operation("t") == 1
        assert tracker.start_operation("t") == 2
        assert tracker.is_busy("t")

        assert tracker.end_operation("t") == 1
        assert tracker.end_operation("t") == 0
        assert not tracker.is_busy("t")
        assert tracker.busy_tables() == []

    def test_idle_listener_only_at_zero(self, tracker):
        idle = []
        tracker.add_idle_listener(idle.append)

        tracker.start_operation("t")
        tracker.start_operation("t")
        tracker.end_operation("t")
        assert idle == []

        tracker.end_operation("t")
        assert idle == ["t"]

    def test_underflow_is_logged_and_floored(self, tracker, caplog):
        with caplog.at_level(logging.ERROR):
            assert tracker.end_operation("t") == 0

        assert tracker.count("t") == 0
        assert "without a matching start" in caplog.text

    def test_track_releases_on_error(self, tracker):
        with pytest.raises(RuntimeError):
            with tracker.track("t"):
                assert tracker.count("t") == 1
                raise RuntimeError("save failed")

        assert tracker.count("t") == 0


class TestInvalidationScheduler:
    """Tests for InvalidationScheduler."""

    @pytest.mark.asyncio
    async def test_invalidation_is_delayed(self, cache, scheduler):
        cache.put("t", [], [])
        cache.mark_initialized("t")

        scheduler.invalidate("t")

        assert cache.peek("t") is not None
        assert scheduler.is_pending("t")

        await settle()

        assert cache.peek("t") is None
        assert not cache.is_initialized("t")
        assert scheduler.fired_count == 1

    @pytest.mark.asyncio
    async def test_rearming_coalesces(self, cache, scheduler):
        cache.put("t", [], [])

        scheduler.invalidate("t")
        scheduler.invalidate("t")
        scheduler.invalidate("t")

        assert scheduler.pending_tables() == ["t"]
        await settle()
        assert scheduler.fired_count == 1

    @pytest.mark.asyncio
    async def test_deferred_until_operation_ends(self, cache, tracker, scheduler):
        """A timer firing on a busy table is dropped; the end re-arms it."""
        cache.put("t", [], [])

        tracker.start_operation("t")
        scheduler.invalidate("t")
        await settle()

        assert cache.peek("t") is not None
        assert scheduler.dropped_count == 1

        tracker.end_operation("t")
        assert cache.peek("t") is not None
        await settle()

        assert cache.peek("t") is None

    @pytest.mark.asyncio
    async def test_busy_table_drop_scenario(self, cache, tracker, scheduler):
        cache.put("R", [], [])

        tracker.start_operation("R")
        scheduler.invalidate("R")
        tracker.start_operation("R")
        await settle()
        assert cache.peek("R") is not None

        tracker.end_operation("R")
        await settle()
        assert cache.peek("R") is not None

        tracker.end_operation("R")
        await settle()
        assert cache.peek("R") is None

    @pytest.mark.asyncio
    async def test_operation_end_arms_invalidation(self, cache, tracker, scheduler):
        cache.put("t", [], [])

        with tracker.track("t"):
            pass

        assert scheduler.is_pending("t")
        await settle()
        assert cache.peek("t") is None

    @pytest.mark.asyncio
    async def test_invalidate_all_is_immediate(self, cache, scheduler):
        cache.put("a", [], [])
        cache.put("b", [], [])
        scheduler.invalidate("a")

        scheduler.invalidate(None)

        assert cache.cached_tables() == []
        assert scheduler.pending_tables() == []

    @pytest.mark.asyncio
    async def test_other_tables_untouched(self, cache, scheduler):
        cache.put("a", [], [])
        cache.put("b", [], [])

        scheduler.invalidate("a")
        await settle()

        assert cache.cached_tables() == ["b"]
