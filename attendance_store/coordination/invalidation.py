"""
Delayed, cancellable cache invalidation.

A write does not clear its table's cache immediately: related writes tend
to arrive in short bursts (arrival, then point and penalty updates), and
clearing between them would force a full reload per write. Instead the
end of the last in-flight write arms a timer; re-arming replaces the
previous timer, so a burst produces a single clear once it settles.

Invariants:
    - At most one pending timer per table
    - The busy check happens when the timer fires, not when it is armed
    - A timer that fires on a busy table is dropped; the busy operation's
      own end re-arms one
    - invalidate(None) clears everything immediately and cancels all timers
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..cache.store import CacheStore
from .tracker import OperationTracker

logger = logging.getLogger(__name__)


class InvalidationScheduler:
    """Arms per-table delayed cache clears that respect in-flight writes.

    Attributes:
        cache: Cache state to clear
        tracker: In-flight operation counts consulted at fire time
        delay: Seconds between arming and firing

    Example:
        >>> scheduler = InvalidationScheduler(cache, tracker, delay=5.0)
        >>> scheduler.invalidate("2025-01-01")   # cleared ~5s later if idle
        >>> scheduler.invalidate(None)           # cold reset, immediate
    """

    def __init__(
        self,
        cache: CacheStore,
        tracker: OperationTracker,
        delay: float = 5.0,
    ) -> None:
        self.cache = cache
        self.tracker = tracker
        self.delay = delay
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self.fired_count = 0
        self.dropped_count = 0
        tracker.add_idle_listener(self.invalidate)

    def invalidate(self, table: str | None = None) -> None:
        """Schedule a delayed clear of one table, or clear all now.

        Args:
            table: Table to invalidate, or None for a full cold reset

        Note:
            Arming a timer needs a running event loop.
        """
        if table is None:
            self.cancel_all()
            self.cache.clear_all()
            return

        existing = self._pending.pop(table, None)
        if existing is not None:
            existing.cancel()

        loop = asyncio.get_running_loop()
        self._pending[table] = loop.call_later(self.delay, self._fire, table)
        logger.debug(
            "Invalidation armed",
            extra={"table": table, "delay_seconds": self.delay, "replaced": existing is not None},
        )

    def _fire(self, table: str) -> None:
        self._pending.pop(table, None)

        if self.tracker.is_busy(table):
            self.dropped_count += 1
            logger.debug(
                "Invalidation dropped, table busy",
                extra={"table": table, "in_flight": self.tracker.count(table)},
            )
            return

        self.cache.clear_table(table)
        self.fired_count += 1
        logger.debug("Invalidation fired", extra={"table": table})

    def is_pending(self, table: str) -> bool:
        return table in self._pending

    def pending_tables(self) -> list[str]:
        return list(self._pending)

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "pending": len(self._pending),
            "fired": self.fired_count,
            "dropped": self.dropped_count,
            "delay_seconds": self.delay,
        }
