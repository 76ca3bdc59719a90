"""
Short-window duplicate event suppression.

A user retrying an action (double tap, network resend) within a few
seconds should see it acknowledged, not applied twice. DedupWindow
remembers recent event keys with their first-seen time.

Invariants:
    - A key is a duplicate while now - first_seen < window
    - At most `capacity` keys are remembered; the oldest go first
    - release() forgets a key, so a failed write can be retried at once
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable


class DedupWindow:
    """Remembers recently seen event keys for a fixed window."""

    def __init__(
        self,
        window_seconds: float = 5.0,
        capacity: int = 100,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.window_seconds = window_seconds
        self.capacity = capacity
        self.clock = clock or time.monotonic
        self._seen: OrderedDict[str, float] = OrderedDict()
        self.suppressed_count = 0

    def claim(self, key: str) -> bool:
        """Record a key; return False if it was already seen within the window."""
        now = self.clock()
        self._expire(now)

        if key in self._seen:
            self.suppressed_count += 1
            return False

        self._seen[key] = now
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def release(self, key: str) -> None:
        self._seen.pop(key, None)

    def _expire(self, now: float) -> None:
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at < self.window_seconds:
                break
            del self._seen[key]

    def __len__(self) -> int:
        return len(self._seen)
