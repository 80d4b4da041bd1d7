"""Shared fixtures and fakes for the fx_history test-suite."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import pytest

from fx_history.cache.memory_backend import MemoryBackend
from fx_history.models import ExchangeRate
from fx_history.providers.base import ProviderId
from fx_history.providers.static import StaticRateProvider


def make_rate(day: date, **rates: Any) -> ExchangeRate:
    return ExchangeRate.from_mapping(day, rates or {"EUR": "0.9", "INR": "83.1"})


def daily_rates(start: date, days: int) -> list[ExchangeRate]:
    return [
        make_rate(start + timedelta(days=offset), EUR=Decimal("0.9") + offset)
        for offset in range(days)
    ]


class CountingProvider(StaticRateProvider):
    """Static provider that records every ranged fetch it serves."""

    def __init__(
        self,
        records: list[ExchangeRate] | None = None,
        *,
        base_currency: str = "USD",
        provider_id: ProviderId = ProviderId.STATIC,
    ) -> None:
        super().__init__({base_currency: records or []})
        self.provider_id = provider_id
        self.history_calls: list[tuple[str, date, date]] = []
        self.latest_calls: list[str] = []
        self.fail_with: Exception | None = None

    async def get_history(self, base_currency: str, start: date, end: date) -> list[ExchangeRate]:
        self.history_calls.append((base_currency, start, end))
        if self.fail_with is not None:
            raise self.fail_with
        return await super().get_history(base_currency, start, end)

    async def get_latest(self, base_currency: str) -> ExchangeRate:
        self.latest_calls.append(base_currency)
        return await super().get_latest(base_currency)


class FixedClock:
    """Manually advanced clock used to exercise TTL expiry."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def backend(clock: FixedClock) -> MemoryBackend:
    return MemoryBackend(clock=clock)
