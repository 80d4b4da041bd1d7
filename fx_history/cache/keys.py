"""Deterministic cache key derivation.

Two namespaces share the ``provider<sep>BASE<sep>selector`` layout:

* per-day keys use a bare ISO date selector (``frankfurter:USD:2024-01-01``)
  and hold one serialised :class:`~fx_history.models.ExchangeRate`;
* per-range keys use a ``start..end`` selector
  (``frankfurter:USD:2024-01-01..2024-01-31``); PageStore appends ``#p<size>``
  (or ``#all`` for the unpaginated group) to address one hash per page size.

Neither ``..`` nor ``#`` can appear in an ISO date, so the namespaces never
collide.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from fx_history.models import normalise_currency
from fx_history.utils.date_range import RANGE_TOKEN, DateRange

PAGE_SUFFIX_MARKER = "#"
ALL_PAGES_SUFFIX = "all"


@dataclass(frozen=True, slots=True)
class CacheKeyScheme:
    separator: str = ":"

    def __post_init__(self) -> None:
        if not self.separator or any(ch in self.separator for ch in ".#-"):
            raise ValueError("separator must be non-empty and must not contain '.', '#' or '-'")

    def prefix(self, provider_id: str, base_currency: str) -> str:
        """Return the namespace shared by every key of one provider/currency pair."""

        provider = provider_id.strip().lower()
        base = normalise_currency(base_currency)
        if not provider or not base:
            raise ValueError("provider_id and base_currency must not be blank")
        if self.separator in provider or self.separator in base:
            raise ValueError(f"Key components must not contain separator {self.separator!r}")
        return f"{provider}{self.separator}{base}{self.separator}"

    def day_key(self, provider_id: str, base_currency: str, day: date) -> str:
        return self.prefix(provider_id, base_currency) + day.isoformat()

    def range_key(self, provider_id: str, base_currency: str, start: date, end: date) -> str:
        """Return the logical key of a range result; PageStore adds the page-size suffix."""

        return self.prefix(provider_id, base_currency) + DateRange(start, end).token()

    @staticmethod
    def group_key(range_key: str, page_size: int | None) -> str:
        """Return the hash group holding ``range_key`` split by ``page_size``.

        ``page_size=None`` selects the ``all`` group used when pagination is
        not requested.
        """

        if page_size is not None and page_size < 1:
            raise ValueError("page_size must be greater than 0")
        suffix = ALL_PAGES_SUFFIX if page_size is None else f"p{page_size}"
        return f"{range_key}{PAGE_SUFFIX_MARKER}{suffix}"

    def parse_day_key(self, key: str) -> tuple[str, str, date]:
        """Split a per-day key back into ``(provider_id, base_currency, day)``."""

        parts = key.split(self.separator)
        if len(parts) != 3 or RANGE_TOKEN in parts[2] or PAGE_SUFFIX_MARKER in parts[2]:
            raise ValueError(f"Not a per-day cache key: {key!r}")
        provider, base, selector = parts
        return provider, base, date.fromisoformat(selector)


DEFAULT_KEY_SCHEME = CacheKeyScheme()

__all__ = ["ALL_PAGES_SUFFIX", "CacheKeyScheme", "DEFAULT_KEY_SCHEME"]
