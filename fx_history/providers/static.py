"""Provider serving rates from an in-memory table."""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Mapping

from fx_history.errors import InvalidRangeError, ProviderUnavailableError
from fx_history.models import ExchangeRate, normalise_currency
from fx_history.providers.base import ProviderId, RateProvider


class StaticRateProvider(RateProvider):
    """Serve pre-loaded rates, e.g. for offline runs or fixtures.

    ``table`` maps a base currency to its records. Days without a record are
    simply not returned, mirroring providers that skip non-trading days.
    """

    provider_id = ProviderId.STATIC

    def __init__(self, table: Mapping[str, Iterable[ExchangeRate]] | None = None) -> None:
        self._table: dict[str, dict[date, ExchangeRate]] = {}
        for base_currency, records in (table or {}).items():
            self.load(base_currency, records)

    def load(self, base_currency: str, records: Iterable[ExchangeRate]) -> None:
        by_day = self._table.setdefault(normalise_currency(base_currency), {})
        for record in records:
            by_day[record.rate_date] = record

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Mapping[str, Mapping[str, Any]]]
    ) -> "StaticRateProvider":
        """Build from ``{base: {"YYYY-MM-DD": {currency: rate}}}``."""

        provider = cls()
        for base_currency, days in payload.items():
            provider.load(
                base_currency,
                (
                    ExchangeRate.from_mapping(date.fromisoformat(day), rates)
                    for day, rates in days.items()
                ),
            )
        return provider

    def _records(self, base_currency: str) -> dict[date, ExchangeRate]:
        base = normalise_currency(base_currency)
        if base not in self._table:
            raise ProviderUnavailableError(f"No static rates loaded for base currency {base}")
        return self._table[base]

    async def get_history(self, base_currency: str, start: date, end: date) -> list[ExchangeRate]:
        if start > end:
            raise InvalidRangeError("start date must not be after end date")
        records = self._records(base_currency)
        return [records[day] for day in sorted(records) if start <= day <= end]

    async def get_latest(self, base_currency: str) -> ExchangeRate:
        records = self._records(base_currency)
        if not records:
            raise ProviderUnavailableError(f"No static rates loaded for {base_currency}")
        return records[max(records)]


__all__ = ["StaticRateProvider"]
