"""
Table schemas and typed records.

Rows arrive from the remote store as string-keyed records. This module
decodes them once, at the boundary, into typed records so that a renamed
or missing column fails loudly at decode time instead of silently reading
an empty string deep inside business logic.

Two table families exist:
    roster: one fixed table ("Worker info"), the employee directory
    daily:  one table per calendar day, named YYYY-MM-DD

Invariants:
    - Header names are the wire format; attribute names never leak to the store
    - Key fields compare after str().strip() normalization
    - Decoding a row that lacks a schema field raises SchemaMismatchError
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple, TypeVar

from .remote.base import Row

R = TypeVar("R", bound="TypedRecord")


class SchemaMismatchError(Exception):
    """A row does not carry the fields its schema requires."""

    def __init__(self, table: str, missing: list[str]) -> None:
        super().__init__(f"Table '{table}' is missing fields: {', '.join(missing)}")
        self.table = table
        self.missing = missing


def normalize_key(value: Any) -> str:
    """Normalize a key field value for index lookups."""
    if value is None:
        return ""
    return str(value).strip()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "yes", "1")


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


@dataclass(frozen=True)
class TableSchema:
    """Header layout and key field of a table family.

    Attributes:
        name: Human-readable family name
        headers: Ordered header row
        key_field: Header whose value identifies a row
    """

    name: str
    headers: Tuple[str, ...]
    key_field: str

    def seed_row(self, **values: Any) -> Dict[str, str]:
        """Build a full row with every header present."""
        unknown = set(values) - set(self.headers)
        if unknown:
            raise KeyError(f"Unknown fields for {self.name}: {sorted(unknown)}")
        return {name: "" if values.get(name) is None else str(values[name]) for name in self.headers}


class TypedRecord:
    """Base for records decoded from a Row through a header mapping."""

    # (attribute, header) pairs
    FIELDS: ClassVar[Tuple[Tuple[str, str], ...]] = ()
    BOOL_FIELDS: ClassVar[frozenset[str]] = frozenset()

    @classmethod
    def from_row(cls: type[R], row: Row) -> R:
        values = row.to_dict()
        missing = [header for _, header in cls.FIELDS if header not in values]
        if missing:
            raise SchemaMismatchError(row.table, missing)

        kwargs: Dict[str, Any] = {"row_number": row.row_number}
        for attr, header in cls.FIELDS:
            raw = values.get(header) or ""
            kwargs[attr] = _as_bool(raw) if attr in cls.BOOL_FIELDS else raw.strip()
        return cls(**kwargs)  # type: ignore[call-arg]

    def apply_to(self, row: Row) -> None:
        """Write every field of this record back onto a row."""
        for attr, header in self.FIELDS:
            value = getattr(self, attr)
            row.set(header, _bool_text(value) if attr in self.BOOL_FIELDS else value)


@dataclass
class RosterEntry(TypedRecord):
    """An employee from the roster table."""

    FIELDS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("name_full", "Name full"),
        ("work_time", "Work time"),
        ("telegram_name", "Telegram name"),
        ("company", "Company"),
        ("telegram_username", "Telegram user name"),
        ("telegram_id", "Telegram Id"),
    )

    row_number: int
    name_full: str = ""
    work_time: str = ""
    telegram_name: str = ""
    company: str = ""
    telegram_username: str = ""
    telegram_id: str = ""

    @property
    def is_registered(self) -> bool:
        return bool(self.telegram_id)


@dataclass
class DailyRecord(TypedRecord):
    """One employee's attendance state for one day."""

    FIELDS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("name", "Name"),
        ("telegram_id", "TelegramId"),
        ("came_on_time", "Came on time"),
        ("when_come", "When come"),
        ("leave_time", "Leave time"),
        ("hours_worked", "Hours worked"),
        ("remaining_hours", "Remaining hours to work"),
        ("left_early", "Left early"),
        ("why_left_early", "Why left early"),
        ("will_be_late", "will be late"),
        ("will_be_late_at", "will be late will come at"),
        ("reminder_1_sent", "reminder_1_sent"),
        ("reminder_2_sent", "reminder_2_sent"),
        ("reminder_3_sent", "reminder_3_sent"),
        ("absent", "Absent"),
        ("why_absent", "Why absent"),
        ("left_temporarily", "Left temporarily"),
        ("how_long_was_out", "How long was out"),
        ("temp_exit_time", "Temp exit time"),
        ("temp_exit_reason", "Temp exit reason"),
        ("temp_exit_duration", "Temp exit duration"),
        ("temp_exit_expected_return", "Temp exit expected return"),
        ("temp_exit_remind_at", "Temp exit remind at"),
        ("temp_exit_actual_return", "Temp exit actual return"),
        ("temp_exit_remind_sent", "Temp exit remind sent"),
        ("currently_out", "Currently out"),
        ("penalty_minutes", "Penalty minutes"),
        ("required_end_time", "Required end time"),
        ("point", "Point"),
    )
    BOOL_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "reminder_1_sent",
            "reminder_2_sent",
            "reminder_3_sent",
            "temp_exit_remind_sent",
            "currently_out",
        }
    )

    row_number: int
    name: str = ""
    telegram_id: str = ""
    came_on_time: str = ""
    when_come: str = ""
    leave_time: str = ""
    hours_worked: str = ""
    remaining_hours: str = ""
    left_early: str = ""
    why_left_early: str = ""
    will_be_late: str = ""
    will_be_late_at: str = ""
    reminder_1_sent: bool = False
    reminder_2_sent: bool = False
    reminder_3_sent: bool = False
    absent: str = ""
    why_absent: str = ""
    left_temporarily: str = ""
    how_long_was_out: str = ""
    temp_exit_time: str = ""
    temp_exit_reason: str = ""
    temp_exit_duration: str = ""
    temp_exit_expected_return: str = ""
    temp_exit_remind_at: str = ""
    temp_exit_actual_return: str = ""
    temp_exit_remind_sent: bool = False
    currently_out: bool = False
    penalty_minutes: str = ""
    required_end_time: str = ""
    point: str = ""

    @property
    def has_arrived(self) -> bool:
        return bool(self.when_come)

    @property
    def has_left(self) -> bool:
        return bool(self.leave_time)


ROSTER_SCHEMA = TableSchema(
    name="roster",
    headers=tuple(header for _, header in RosterEntry.FIELDS),
    key_field="Telegram Id",
)

DAILY_SCHEMA = TableSchema(
    name="daily",
    headers=tuple(header for _, header in DailyRecord.FIELDS),
    key_field="TelegramId",
)


def daily_seed_row(name: str, telegram_id: str) -> Dict[str, str]:
    """Initial daily row for one employee (all flags false, nothing recorded)."""
    flags = {
        header: "false"
        for attr, header in DailyRecord.FIELDS
        if attr in DailyRecord.BOOL_FIELDS
    }
    return DAILY_SCHEMA.seed_row(Name=name, TelegramId=telegram_id, **flags)
