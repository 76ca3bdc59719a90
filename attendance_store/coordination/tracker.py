"""
In-flight write tracking per table.

Every write path brackets its mutation with start_operation/end_operation
(normally through the track() context manager). A table with a positive
count is "busy" and must not have its cache invalidated: a writer may be
holding one of its cached Row objects between mutation and save.

Invariants:
    - Counts never go negative; an unmatched end is logged and floored
    - When a count returns to zero, idle listeners are notified
    - track() releases on every exit path, errors included
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Callable

logger = logging.getLogger(__name__)

IdleListener = Callable[[str], None]


class OperationTracker:
    """Counts in-flight mutating operations per table.

    Example:
        >>> tracker = OperationTracker()
        >>> with tracker.track("2025-01-01"):
        ...     row.set("When come", "09:01:12")
        ...     await retry.execute(row.save)
    """

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._idle_listeners: list[IdleListener] = []

    def add_idle_listener(self, listener: IdleListener) -> None:
        """Register a callback run when a table's count returns to zero."""
        self._idle_listeners.append(listener)

    def start_operation(self, table: str) -> int:
        count = self._counts.get(table, 0) + 1
        self._counts[table] = count
        logger.debug("Operation started", extra={"table": table, "in_flight": count})
        return count

    def end_operation(self, table: str) -> int:
        count = self._counts.get(table, 0) - 1
        if count < 0:
            logger.error(
                "Operation ended without a matching start",
                extra={"table": table},
            )
            count = 0

        if count == 0:
            self._counts.pop(table, None)
        else:
            self._counts[table] = count
        logger.debug("Operation ended", extra={"table": table, "in_flight": count})

        if count == 0:
            for listener in self._idle_listeners:
                listener(table)
        return count

    @contextmanager
    def track(self, table: str) -> Iterator[None]:
        self.start_operation(table)
        try:
            yield
        finally:
            self.end_operation(table)

    def count(self, table: str) -> int:
        return self._counts.get(table, 0)

    def is_busy(self, table: str) -> bool:
        return self._counts.get(table, 0) > 0

    def busy_tables(self) -> list[str]:
        return list(self._counts)
