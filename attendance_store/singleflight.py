"""
Per-key single-flight execution for coroutines.

Concurrent callers that ask for the same key while a call is in flight
await the first caller's outcome instead of starting their own. This is
how table loads, table initialization and roster reconciliation avoid
duplicate remote work under interleaving.

Invariants:
    - At most one in-flight call per key
    - The key is released on every exit path (result, error, cancellation)
    - Waiters observe exactly the owner's result or exception
    - A cancelled owner does not cancel its waiters; one of them takes over
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FlightAbandonedError(Exception):
    """The owning call was cancelled before it produced an outcome."""


class SingleFlight(Generic[T]):
    """Coalesces concurrent calls per key onto one shared future.

    Example:
        >>> loads: SingleFlight[list[Row]] = SingleFlight("table-load")
        >>> rows = await loads.run("2025-01-01", lambda: fetch("2025-01-01"))
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._inflight: dict[str, asyncio.Future[T]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        while True:
            pending = self._inflight.get(key)
            if pending is None:
                return await self._own(key, factory)

            logger.debug(
                "Joining in-flight call",
                extra={"flight": self.name, "key": key},
            )
            try:
                return await asyncio.shield(pending)
            except FlightAbandonedError:
                logger.debug(
                    "In-flight call was cancelled, retrying",
                    extra={"flight": self.name, "key": key},
                )

    async def _own(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.set_exception(FlightAbandonedError(key))
            future.exception()
            raise
        except BaseException as e:
            future.set_exception(e)
            # Waiters re-raise it; with no waiters the loop must not report it
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._release(key, future)

    def _release(self, key: str, future: asyncio.Future[T]) -> None:
        current = self._inflight.get(key)
        if current is future:
            del self._inflight[key]
            return
        logger.error(
            "Single-flight release for a key not held by this call",
            extra={"flight": self.name, "key": key},
        )
