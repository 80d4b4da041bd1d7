"""Data models shared across the history engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping


def normalise_currency(code: str) -> str:
    """Return ``code`` stripped and upper-cased (``" usd"`` -> ``"USD"``)."""

    return code.strip().upper()


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """Rates of every quoted currency against the base currency on one day."""

    rate_date: date
    rates: dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, rate_date: date, rates: Mapping[str, Any]) -> "ExchangeRate":
        """Build a record from a raw ``{currency: rate}`` mapping.

        Currency codes are normalised and every rate is coerced to
        :class:`~decimal.Decimal` through its string form so binary float noise
        never leaks into stored values.
        """

        converted: dict[str, Decimal] = {}
        for currency, value in rates.items():
            try:
                converted[normalise_currency(currency)] = Decimal(str(value))
            except InvalidOperation as exc:
                raise ValueError(f"Invalid rate {value!r} for {currency} on {rate_date}") from exc
        return cls(rate_date=rate_date, rates=dict(sorted(converted.items())))

    @classmethod
    def unpublished(cls, rate_date: date) -> "ExchangeRate":
        """Placeholder for a day the provider has no rates for (weekends, holidays)."""

        return cls(rate_date=rate_date)

    @property
    def is_published(self) -> bool:
        return bool(self.rates)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON friendly representation."""

        return {
            "date": self.rate_date.isoformat(),
            "rates": {currency: str(value) for currency, value in self.rates.items()},
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ExchangeRate":
        return cls.from_mapping(date.fromisoformat(payload["date"]), payload["rates"])


@dataclass(frozen=True, slots=True)
class PaginationOptions:
    """Page request supplied by the caller; pages are numbered from 1."""

    page_number: int = 1
    max_page_size: int = 10

    def __post_init__(self) -> None:
        if self.page_number < 1:
            raise ValueError("page_number must be greater than 0")
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be greater than 0")


@dataclass(frozen=True, slots=True)
class PaginationInfo:
    """Describes the page served in a response."""

    current_page_number: int
    current_page_size: int
    page_count_total: int

    def to_payload(self) -> dict[str, int]:
        return {
            "current_page_number": self.current_page_number,
            "current_page_size": self.current_page_size,
            "page_count_total": self.page_count_total,
        }


@dataclass(frozen=True, slots=True)
class ExchangeRateHistory:
    """Chronologically ordered rates for a base currency over a date range."""

    provider_id: str
    base_currency: str
    start_date: date
    end_date: date
    rates: tuple[ExchangeRate, ...]
    pagination: PaginationInfo

    def to_payload(self) -> dict[str, Any]:
        return {
            "provider": self.provider_id,
            "base_currency": self.base_currency,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "rates": {
                rate.rate_date.isoformat(): {k: str(v) for k, v in rate.rates.items()}
                for rate in self.rates
            },
            "pagination": self.pagination.to_payload(),
        }


class SegmentKind(str, Enum):
    """Whether a run of days was found in the cache."""

    HIT = "hit"
    MISS = "miss"


@dataclass(frozen=True, slots=True)
class Segment:
    """A contiguous run of days classified uniformly as HIT or MISS.

    HIT segments always span a single day and carry the cached record; MISS
    segments may span several days and are backfilled with one ranged fetch.
    """

    kind: SegmentKind
    start_date: date
    end_date: date
    cached_value: ExchangeRate | None = None

    @classmethod
    def hit(cls, value: ExchangeRate) -> "Segment":
        return cls(SegmentKind.HIT, value.rate_date, value.rate_date, value)

    @classmethod
    def miss(cls, start_date: date, end_date: date) -> "Segment":
        return cls(SegmentKind.MISS, start_date, end_date)

    @property
    def is_miss(self) -> bool:
        return self.kind is SegmentKind.MISS

    @property
    def day_count(self) -> int:
        return (self.end_date - self.start_date).days + 1


__all__ = [
    "ExchangeRate",
    "ExchangeRateHistory",
    "PaginationInfo",
    "PaginationOptions",
    "Segment",
    "SegmentKind",
    "normalise_currency",
]
