"""
Daily attendance tables.

One table per calendar day, named YYYY-MM-DD in the configured timezone.
A new day's table gets the daily header and one seed row per named roster
employee; employees added to the roster later, or left out by a seeding
run that failed part way, are appended by reconciliation.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable
from zoneinfo import ZoneInfo

from .cache.roster import RosterCache
from .coordination.initialization import SchemaFn, TableSetup
from .remote.base import Row
from .schema import DAILY_SCHEMA, ROSTER_SCHEMA, RosterEntry, daily_seed_row, normalize_key


def daily_table_name(day: date | datetime | None = None, timezone: str = "Asia/Tashkent") -> str:
    """Name of the daily table for a date (today in `timezone` by default)."""
    if day is None:
        day = datetime.now(ZoneInfo(timezone)).date()
    elif isinstance(day, datetime):
        day = day.date()
    return day.isoformat()


def daily_schema_fn(roster: RosterCache) -> SchemaFn:
    """Build the schema function that seeds a daily table from the roster.

    New tables are created at their final size by the remote store, so
    seeding only writes the header and rows.
    """

    async def seed_daily_table(setup: TableSetup) -> None:
        entries = await roster.entries()
        await setup.set_header(list(DAILY_SCHEMA.headers))
        for entry in entries:
            if entry.name_full:
                await setup.append_row(daily_seed_row(entry.name_full, entry.telegram_id))

    return seed_daily_table


async def seed_roster_table(setup: TableSetup) -> None:
    """Schema function for an empty roster: header only, no employees."""
    await setup.set_header(list(ROSTER_SCHEMA.headers))


def missing_employees(rows: Iterable[Row], entries: Iterable[RosterEntry]) -> list[RosterEntry]:
    """Roster employees with no row in a daily table, matched by id or name."""
    known: set[str] = set()
    for row in rows:
        telegram_id = normalize_key(row.get("TelegramId"))
        name = row.get("Name").strip()
        if telegram_id:
            known.add(f"id:{telegram_id}")
        if name:
            known.add(f"name:{name}")

    missing = []
    for entry in entries:
        if not entry.name_full:
            continue
        if entry.telegram_id and f"id:{entry.telegram_id}" in known:
            continue
        if f"name:{entry.name_full}" in known:
            continue
        missing.append(entry)
    return missing
