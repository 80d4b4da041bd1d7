from __future__ import annotations

import json
from datetime import date, timedelta
from typing import Any

import pytest

from fx_history.cache.keys import DEFAULT_KEY_SCHEME
from fx_history.cache.memory_backend import MemoryBackend
from fx_history.errors import CacheUnavailableError, InvalidRangeError, PageOutOfRangeError
from fx_history.history.service import HistoryService, HistorySettings
from fx_history.models import PaginationOptions
from fx_history.providers.base import ProviderId
from fx_history.providers.frankfurter import FrankfurterProvider
from fx_history.providers.registry import ProviderRegistry

from conftest import CountingProvider, daily_rates, make_rate

START = date(2024, 1, 1)
END = date(2024, 1, 5)


def _service(
    backend: MemoryBackend, provider: CountingProvider, **settings
) -> HistoryService:
    registry = ProviderRegistry([provider], default_provider_id=ProviderId.STATIC)
    return HistoryService(
        registry,
        backend,
        settings=HistorySettings(default_provider_id=ProviderId.STATIC, **settings),
    )


@pytest.mark.asyncio
async def test_cold_range_is_fetched_once_and_cached(backend: MemoryBackend) -> None:
    records = daily_rates(START, 5)
    provider = CountingProvider(records)
    service = _service(backend, provider)

    history = await service.get_history("usd", "2024-01-01", "2024-01-05")

    assert provider.history_calls == [("USD", START, END)]
    assert list(history.rates) == records
    assert history.provider_id == "static"
    assert history.base_currency == "USD"
    assert (history.start_date, history.end_date) == (START, END)
    assert history.pagination.to_payload() == {
        "current_page_number": 1,
        "current_page_size": 5,
        "page_count_total": 1,
    }
    for record in records:
        key = DEFAULT_KEY_SCHEME.day_key("static", "USD", record.rate_date)
        assert await backend.get(key) is not None


@pytest.mark.asyncio
async def test_warm_repeat_makes_no_provider_calls(backend: MemoryBackend) -> None:
    provider = CountingProvider(daily_rates(START, 5))
    service = _service(backend, provider)
    first = await service.get_history("USD", START, END, PaginationOptions(2, 2))
    provider.history_calls.clear()

    again = await service.get_history("USD", START, END, PaginationOptions(2, 2))
    # Different page size: no stored pages yet, but every day is cached.
    resized = await service.get_history("USD", START, END, PaginationOptions(1, 3))
    unpaginated = await service.get_history("USD", START, END)

    assert provider.history_calls == []
    assert again == first
    assert [rate.rate_date for rate in resized.rates] == [
        START + timedelta(days=n) for n in range(3)
    ]
    assert len(unpaginated.rates) == 5


@pytest.mark.asyncio
async def test_paginated_history(backend: MemoryBackend) -> None:
    records = daily_rates(START, 5)
    service = _service(backend, CountingProvider(records))

    pages = [
        await service.get_history("USD", START, END, PaginationOptions(number, 2))
        for number in (1, 2, 3)
    ]

    assert [list(page.rates) for page in pages] == [records[0:2], records[2:4], records[4:5]]
    assert [page.pagination.current_page_size for page in pages] == [2, 2, 1]
    assert {page.pagination.page_count_total for page in pages} == {3}


@pytest.mark.asyncio
async def test_page_beyond_total_raises(backend: MemoryBackend) -> None:
    service = _service(backend, CountingProvider(daily_rates(START, 5)))

    with pytest.raises(PageOutOfRangeError) as cold:
        await service.get_history("USD", START, END, PaginationOptions(4, 2))
    assert cold.value.page_count_total == 3

    # Pages are now stored; the warm path must agree.
    with pytest.raises(PageOutOfRangeError) as warm:
        await service.get_history("USD", START, END, PaginationOptions(4, 2))
    assert warm.value.page_number == 4
    assert warm.value.page_count_total == 3


@pytest.mark.asyncio
async def test_range_without_published_rates(backend: MemoryBackend) -> None:
    provider = CountingProvider([])
    service = _service(backend, provider)

    history = await service.get_history("USD", START, END, PaginationOptions(1, 2))
    assert history.rates == ()
    assert history.pagination.page_count_total == 0
    assert history.pagination.current_page_size == 0

    with pytest.raises(PageOutOfRangeError):
        await service.get_history("USD", START, END, PaginationOptions(2, 2))


@pytest.mark.asyncio
async def test_partially_cached_range_fetches_only_gaps(backend: MemoryBackend) -> None:
    records = daily_rates(START, 5)
    provider = CountingProvider(records)
    service = _service(backend, provider)
    await service.get_history("USD", date(2024, 1, 2), date(2024, 1, 2))
    await service.get_history("USD", date(2024, 1, 4), date(2024, 1, 4))
    provider.history_calls.clear()

    history = await service.get_history("USD", START, END)

    assert sorted(provider.history_calls) == [
        ("USD", date(2024, 1, 1), date(2024, 1, 1)),
        ("USD", date(2024, 1, 3), date(2024, 1, 3)),
        ("USD", date(2024, 1, 5), date(2024, 1, 5)),
    ]
    assert list(history.rates) == records


@pytest.mark.asyncio
async def test_invalid_range_is_rejected_before_fetching(backend: MemoryBackend) -> None:
    provider = CountingProvider(daily_rates(START, 5))
    service = _service(backend, provider)
    with pytest.raises(InvalidRangeError):
        await service.get_history("USD", END, START)
    with pytest.raises(InvalidRangeError):
        await service.get_history("USD", "yesterday", END)
    assert provider.history_calls == []


@pytest.mark.asyncio
async def test_unknown_provider_falls_back_to_default(
    backend: MemoryBackend, caplog: pytest.LogCaptureFixture
) -> None:
    provider = CountingProvider(daily_rates(START, 1))
    service = _service(backend, provider)
    with caplog.at_level("WARNING"):
        history = await service.get_history("USD", START, START, provider_id="nope")
    assert history.provider_id == "static"
    assert "Using default provider static" in caplog.text


@pytest.mark.asyncio
async def test_get_latest_writes_through(backend: MemoryBackend) -> None:
    records = daily_rates(START, 3)
    provider = CountingProvider(records)
    service = _service(backend, provider)

    latest = await service.get_latest("usd")
    assert latest == records[-1]
    assert provider.latest_calls == ["USD"]

    history = await service.get_history("USD", records[-1].rate_date, records[-1].rate_date)
    assert provider.history_calls == []
    assert list(history.rates) == [latest]


@pytest.mark.asyncio
async def test_day_entries_expire_with_history_ttl(backend: MemoryBackend, clock) -> None:
    provider = CountingProvider([make_rate(START)])
    service = _service(backend, provider, history_ttl=timedelta(hours=1))
    await service.get_latest("USD")
    clock.advance(3600)
    await service.get_history("USD", START, START)
    assert provider.history_calls == [("USD", START, START)]


class _DownBackend(MemoryBackend):
    async def get_many(self, keys):
        raise CacheUnavailableError("cache is down")

    async def hash_get_field(self, group_key: str, field: str):
        raise CacheUnavailableError("cache is down")


@pytest.mark.asyncio
async def test_cache_outage_is_not_a_miss() -> None:
    provider = CountingProvider(daily_rates(START, 5))
    service = _service(_DownBackend(), provider)
    with pytest.raises(CacheUnavailableError):
        await service.get_history("USD", START, END, PaginationOptions(1, 2))
    assert provider.history_calls == []


def test_settings_validation() -> None:
    with pytest.raises(ValueError):
        HistorySettings(max_concurrent_fetches=0)
    with pytest.raises(ValueError):
        HistorySettings(request_timeout=0)


class _WeekendSession:
    """Answers like Frankfurter does for a range starting on Saturday 2024-01-06."""

    body = {
        "amount": 1.0,
        "base": "USD",
        "start_date": "2024-01-05",
        "end_date": "2024-01-08",
        "rates": {
            "2024-01-05": {"EUR": 0.9134},
            "2024-01-08": {"EUR": 0.9141},
        },
    }

    def __init__(self) -> None:
        self.urls: list[str] = []

    def get(self, url: str, params: dict[str, str], timeout: float) -> "_WeekendSession":
        self.urls.append(url)
        return self

    def raise_for_status(self) -> None:
        return None

    def json(self, **kwargs: Any) -> Any:
        return json.loads(json.dumps(self.body), **kwargs)


@pytest.mark.asyncio
async def test_range_starting_on_a_weekend_keeps_only_requested_days(
    backend: MemoryBackend,
) -> None:
    session = _WeekendSession()
    provider = FrankfurterProvider(base_url="https://fx.example", session=session)
    service = HistoryService(ProviderRegistry([provider]), backend)

    history = await service.get_history("USD", "2024-01-06", "2024-01-08")

    assert session.urls == ["https://fx.example/2024-01-06..2024-01-08"]
    assert [rate.rate_date for rate in history.rates] == [date(2024, 1, 8)]
    friday_key = DEFAULT_KEY_SCHEME.day_key("frankfurter", "USD", date(2024, 1, 5))
    assert await backend.get(friday_key) is None


@pytest.mark.asyncio
async def test_weekend_days_are_not_fetched_again(backend: MemoryBackend) -> None:
    friday, monday = date(2024, 1, 5), date(2024, 1, 8)
    provider = CountingProvider([make_rate(friday), make_rate(monday)])
    service = _service(backend, provider)
    await service.get_history("USD", friday, monday)
    provider.history_calls.clear()

    weekend = await service.get_history("USD", "2024-01-06", "2024-01-07")
    to_monday = await service.get_history(
        "USD", "2024-01-06", "2024-01-08", PaginationOptions(1, 5)
    )

    assert provider.history_calls == []
    assert weekend.rates == ()
    assert weekend.pagination.page_count_total == 0
    assert [rate.rate_date for rate in to_monday.rates] == [monday]
