from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta


def parse_date(value: date | datetime | str | None) -> date:
    """Reduce a date, datetime or ISO string to a calendar date.

    Raises ValueError for anything that does not name a calendar day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            return datetime.fromisoformat(text).date()
    raise ValueError(f"Not a date: {value!r}")


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")

    @classmethod
    def of(cls, start: date | datetime | str, end: date | datetime | str) -> DateWindow:
        return cls(parse_date(start), parse_date(end))

    @classmethod
    def starting(cls, start: date, days: int) -> DateWindow:
        return cls(start, start + timedelta(days=max(days, 1) - 1))
