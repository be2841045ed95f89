"""Calendar helpers for production planning.

Weeks run Monday to Sunday. All helpers accept either a ``datetime.date`` or
an ISO ``YYYY-MM-DD`` string and return ISO strings, which is how dates are
stored on orders.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Union

from .constants import DAYS

DateLike = Union[str, date]


@dataclass(frozen=True)
class WeekRange:
    start: str
    end: str

    def contains(self, value: DateLike) -> bool:
        return self.start <= parse_date(value).isoformat() <= self.end


def parse_date(value: DateLike) -> date:
    """Return a ``date`` for an ISO string or date; raise ValueError otherwise."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO date string, got {type(value).__name__}")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from exc


def weekday_name(value: DateLike) -> str:
    return DAYS[parse_date(value).weekday()]


def week_range(value: DateLike) -> WeekRange:
    """Return the Monday..Sunday week containing ``value``."""
    d = parse_date(value)
    # Sunday = 0 ... Saturday = 6
    weekday = (d.weekday() + 1) % 7
    back = 6 if weekday == 0 else weekday - 1
    monday = d - timedelta(days=back)
    sunday = monday + timedelta(days=6)
    return WeekRange(start=monday.isoformat(), end=sunday.isoformat())


def shift_date(value: DateLike, days: int) -> str:
    return (parse_date(value) + timedelta(days=days)).isoformat()


def today() -> str:
    return date.today().isoformat()
