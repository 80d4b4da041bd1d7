"""Utility helpers for working with inclusive calendar date ranges."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator

from fx_history.errors import InvalidRangeError

ISO_DATE_FORMAT = "%Y-%m-%d"
RANGE_TOKEN = ".."


@dataclass(frozen=True)
class DateRange:
    """Container representing a closed date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidRangeError(
                f"start date {self.start.isoformat()} must not be after "
                f"end date {self.end.isoformat()}"
            )

    @classmethod
    def parse(cls, start: str | date, end: str | date) -> "DateRange":
        """Build a range from ISO strings or :class:`date` objects."""

        return cls(start=parse_date(start), end=parse_date(end))

    def days(self) -> Iterator[date]:
        """Yield every day of the range in ascending order."""

        return iter_days(self.start, self.end)

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def token(self) -> str:
        """Return the ``start..end`` selector used in range cache keys."""

        return f"{self.start.isoformat()}{RANGE_TOKEN}{self.end.isoformat()}"


def parse_date(value: str | date) -> date:
    """Parse a date string in ISO format to :class:`date`."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), ISO_DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidRangeError(f"Unparseable date {value!r}; expected YYYY-MM-DD") from exc


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each day from ``start`` to ``end`` inclusive."""

    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


__all__ = ["DateRange", "ISO_DATE_FORMAT", "RANGE_TOKEN", "iter_days", "parse_date"]
