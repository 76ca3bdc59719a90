"""
Unit tests for daily table helpers.
"""

from datetime import date, datetime, timezone

from attendance_store.daily import daily_table_name, missing_employees
from attendance_store.remote.base import Row
from attendance_store.schema import RosterEntry, daily_seed_row


def test_daily_table_name_from_date():
    assert daily_table_name(date(2025, 1, 1)) == "2025-01-01"


def test_daily_table_name_from_datetime():
    assert daily_table_name(datetime(2025, 3, 9, 23, 30)) == "2025-03-09"


def test_daily_table_name_uses_timezone(monkeypatch):
    """Just before midnight UTC it is already the next day in Tashkent (UTC+5)."""

    class FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2025, 1, 1, 22, 0, tzinfo=timezone.utc).astimezone(tz)

    monkeypatch.setattr("attendance_store.daily.datetime", FrozenDatetime)

    assert daily_table_name(timezone="Asia/Tashkent") == "2025-01-02"
    assert daily_table_name(timezone="UTC") == "2025-01-01"


def test_missing_employees_matches_id_or_name():
    rows = [
        Row(None, "2025-01-01", 2, daily_seed_row("Ann Smith", "42")),
        Row(None, "2025-01-01", 3, daily_seed_row("Bob Jones", "")),
    ]
    entries = [
        RosterEntry(row_number=2, name_full="Ann Smith (renamed)", telegram_id="42"),
        RosterEntry(row_number=3, name_full="Bob Jones", telegram_id="1001"),
        RosterEntry(row_number=4, name_full="Cara Lee"),
        RosterEntry(row_number=5, name_full="", telegram_id="9"),
    ]

    missing = missing_employees(rows, entries)

    assert [entry.name_full for entry in missing] == ["Cara Lee"]
