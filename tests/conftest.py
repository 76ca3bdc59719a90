"""
Shared test fixtures.

FakeClock and RecordingSleep make TTLs and backoff deterministic; the
roster and daily fixtures seed an InMemoryRemoteStore with realistic rows.
"""

import pytest

from attendance_store.remote.memory import InMemoryRemoteStore
from attendance_store.schema import DAILY_SCHEMA, ROSTER_SCHEMA, daily_seed_row

ROSTER_TABLE = "Worker info"

ROSTER_ROWS = [
    {
        "Name full": "Ann Smith",
        "Work time": "09:00-18:00",
        "Telegram name": "Ann",
        "Company": "Acme",
        "Telegram user name": "@ann",
        "Telegram Id": "emp42",
    },
    {
        "Name full": "Bob Jones",
        "Work time": "10:00-19:00",
        "Telegram name": "Bob",
        "Company": "Acme",
        "Telegram user name": "@BobJ",
        "Telegram Id": "1001",
    },
    {
        "Name full": "Cara Lee",
        "Work time": "09:00-18:00",
        "Telegram name": "Cara",
        "Company": "Globex",
        "Telegram user name": "",
        "Telegram Id": "",
    },
]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that returns immediately and records its delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def remote():
    """In-memory remote store with the roster and one daily table seeded."""
    store = InMemoryRemoteStore()
    store.seed_table(ROSTER_TABLE, list(ROSTER_SCHEMA.headers), ROSTER_ROWS)
    store.seed_table(
        "2025-01-01",
        list(DAILY_SCHEMA.headers),
        [
            daily_seed_row("Ann Smith", "emp42"),
            daily_seed_row("Bob Jones", "1001"),
        ],
    )
    return store
