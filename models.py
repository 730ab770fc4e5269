"""Medication log data model and calendar-day helpers."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from _constants import ENTITY_KIND

__all__ = [
    "MedicationLogEntry",
    "MonthKey",
    "month_bounds",
    "month_key",
    "parse_day",
    "today_in",
]

MonthKey = tuple[str, ...]


def parse_day(value: Any) -> date:
    """Parse a calendar day from ``YYYY-MM-DD`` or a full ISO-8601 timestamp.

    Only the calendar-day component is kept; the store keys purely on it.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}. Use YYYY-MM-DD.")
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        if len(text) > 10 and text[10] in "T ":
            # The stated calendar day is kept; no timezone conversion.
            return datetime.fromisoformat(text).date()
        raise ValueError(text)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}. Use YYYY-MM-DD.") from exc


def today_in(tz_name: str) -> date:
    """Return the current calendar day in the *tz_name* timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def month_key(subject_id: str, year: int, month: int) -> MonthKey:
    """Cache key for one subject's month of logs."""
    return (ENTITY_KIND, subject_id, f"{year:04d}-{month:02d}")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last calendar day of *month*."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


@dataclass(frozen=True)
class MedicationLogEntry:
    """One persisted (subject, day) record."""

    id: str
    subject_id: str
    date: date
    taken: bool
    created_at: str | None = None
    updated_at: str | None = None

    def with_taken(self, taken: bool) -> MedicationLogEntry:
        return replace(self, taken=taken)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.subject_id,
            "date": self.date.isoformat(),
            "taken": self.taken,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> MedicationLogEntry:
        return cls(
            id=str(data["id"]),
            subject_id=str(data["userId"]),
            date=parse_day(data["date"]),
            taken=bool(data.get("taken", False)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
