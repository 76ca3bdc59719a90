"""
Quota-aware retry executor.

Every remote store call goes through RetryExecutor.execute(). Quota
failures are retried with exponential backoff; every other failure
propagates on the first occurrence.

Invariants:
    - Only quota errors are retried
    - Delay before retry n (0-based) is initial_delay * 2**n
    - Exhausted retries surface as QuotaExceededError

How to change safely:
    - Keep backoff policy here; call sites must not add their own loops
    - The total wait is bounded by initial_delay * (2**max_retries - 1)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from .remote.base import QuotaExceededError, is_quota_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


class RetryExecutor:
    """Runs remote operations with bounded exponential backoff on quota errors.

    Attributes:
        max_retries: Default number of retries after the first attempt
        initial_delay: Default first backoff delay in seconds

    Example:
        >>> retry = RetryExecutor()
        >>> rows = await retry.execute(lambda: remote.get_rows("2025-01-01"))
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        sleep: Sleep | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            max_retries: Default retries after the first attempt
            initial_delay: Default first backoff delay in seconds
            sleep: Awaitable sleep function (injectable for tests)
        """
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._sleep = sleep or asyncio.sleep
        self.retry_count = 0
        self.exhausted_count = 0

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        initial_delay: float | None = None,
    ) -> T:
        """Run an operation, retrying quota failures.

        Args:
            operation: Zero-argument callable returning a fresh awaitable
            max_retries: Override for the retry budget
            initial_delay: Override for the first backoff delay

        Returns:
            The operation's result

        Raises:
            QuotaExceededError: If every attempt hit the quota
            Exception: Any non-quota error, unchanged
        """
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.initial_delay if initial_delay is None else initial_delay

        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_quota_error(e):
                    raise

                if attempt >= retries:
                    self.exhausted_count += 1
                    logger.error(
                        "Quota retries exhausted",
                        extra={"attempts": attempt + 1, "error": str(e)},
                    )
                    if isinstance(e, QuotaExceededError):
                        raise
                    raise QuotaExceededError(str(e), attempts=attempt + 1) from e

                wait = delay * (2 ** attempt)
                self.retry_count += 1
                logger.warning(
                    f"Quota exceeded, retrying in {wait:.1f}s "
                    f"(attempt {attempt + 1}/{retries})",
                    extra={"attempt": attempt + 1, "delay_seconds": wait},
                )
                await self._sleep(wait)
                attempt += 1
