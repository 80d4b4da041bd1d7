"""Caller-facing history and latest-rate operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from fx_history.cache.base_backend import CacheBackend
from fx_history.cache.keys import DEFAULT_KEY_SCHEME, CacheKeyScheme
from fx_history.cache.page_store import Page, PageStore
from fx_history.errors import PageOutOfRangeError
from fx_history.history.backfill import BackfillOrchestrator
from fx_history.history.segmenter import RangeSegmenter, encode_day
from fx_history.models import (
    ExchangeRate,
    ExchangeRateHistory,
    PaginationInfo,
    PaginationOptions,
    normalise_currency,
)
from fx_history.providers.base import ProviderId
from fx_history.providers.frankfurter import FRANKFURTER_BASE_URL
from fx_history.providers.registry import ProviderRegistry
from fx_history.utils.date_range import DateRange
from fx_history.utils.logger import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class HistorySettings:
    """Tunables of the history engine.

    ``history_ttl`` applies to per-day entries and ``page_ttl`` to stored
    page groups; ``None`` disables expiry.
    """

    history_ttl: timedelta | None = timedelta(hours=24)
    page_ttl: timedelta | None = timedelta(hours=24)
    max_concurrent_fetches: int = 4
    default_provider_id: ProviderId = ProviderId.FRANKFURTER
    frankfurter_base_url: str = FRANKFURTER_BASE_URL
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_concurrent_fetches < 1:
            raise ValueError("max_concurrent_fetches must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


class HistoryService:
    """Assemble exchange-rate histories from cache and provider backfills.

    A request first tries the stored page group for the range; on a miss it
    segments the range against the per-day cache, backfills MISS runs,
    stores the assembled collection as pages and serves the requested one.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        backend: CacheBackend,
        *,
        settings: HistorySettings | None = None,
        keys: CacheKeyScheme = DEFAULT_KEY_SCHEME,
    ) -> None:
        self.settings = settings or HistorySettings()
        self.registry = registry
        self.backend = backend
        self._keys = keys
        self._segmenter = RangeSegmenter(backend, keys)
        self._backfill = BackfillOrchestrator(
            backend,
            keys=keys,
            ttl=self.settings.history_ttl,
            max_concurrency=self.settings.max_concurrent_fetches,
        )
        self._pages: PageStore[ExchangeRate] = PageStore(
            backend,
            encode=ExchangeRate.to_payload,
            decode=ExchangeRate.from_payload,
            keys=keys,
        )

    async def get_history(
        self,
        base_currency: str,
        start_date: str | date,
        end_date: str | date,
        pagination: PaginationOptions | None = None,
        *,
        provider_id: ProviderId | str | None = None,
    ) -> ExchangeRateHistory:
        """Return the requested page (or the whole range) of daily rates."""

        date_range = DateRange.parse(start_date, end_date)
        base = normalise_currency(base_currency)
        provider = self.registry.resolve(provider_id)
        pid = provider.provider_id.value
        range_key = self._keys.range_key(pid, base, date_range.start, date_range.end)

        page = await self._read_page(range_key, pagination)
        if page is not None:
            LOGGER.debug("Served %s from stored pages", range_key)
            return self._history(pid, base, date_range, page.values, page.pagination)

        segments = await self._segmenter.segment(pid, base, date_range)
        rates = await self._backfill.backfill(provider, base, segments)
        if not rates:
            return self._empty_history(pid, base, date_range, pagination)

        if pagination is None:
            await self._pages.save_all(range_key, rates, ttl=self.settings.page_ttl)
            info = PaginationInfo(1, len(rates), 1)
            return self._history(pid, base, date_range, rates, info)

        total = await self._pages.save(
            range_key, rates, pagination.max_page_size, ttl=self.settings.page_ttl
        )
        if pagination.page_number > total:
            raise PageOutOfRangeError(pagination.page_number, total)
        offset = (pagination.page_number - 1) * pagination.max_page_size
        values = rates[offset : offset + pagination.max_page_size]
        info = PaginationInfo(pagination.page_number, len(values), total)
        return self._history(pid, base, date_range, values, info)

    async def get_latest(
        self,
        base_currency: str,
        *,
        provider_id: ProviderId | str | None = None,
    ) -> ExchangeRate:
        """Fetch the newest rates and write them through to the per-day cache.

        The cache is not consulted first: a newer publication may exist.
        """

        provider = self.registry.resolve(provider_id)
        base = normalise_currency(base_currency)
        latest = await provider.get_latest(base)
        key = self._keys.day_key(provider.provider_id.value, base, latest.rate_date)
        await self.backend.set(key, encode_day(latest), self.settings.history_ttl)
        return latest

    async def _read_page(
        self, range_key: str, pagination: PaginationOptions | None
    ) -> Page[ExchangeRate] | None:
        if pagination is None:
            return await self._pages.get_all(range_key)
        page = await self._pages.get_page(
            range_key, pagination.max_page_size, pagination.page_number
        )
        if page is None and pagination.page_number > 1:
            first = await self._pages.get_page(range_key, pagination.max_page_size, 1)
            if first is not None:
                raise PageOutOfRangeError(
                    pagination.page_number, first.pagination.page_count_total
                )
        return page

    def _empty_history(
        self,
        provider_id: str,
        base_currency: str,
        date_range: DateRange,
        pagination: PaginationOptions | None,
    ) -> ExchangeRateHistory:
        if pagination is not None and pagination.page_number > 1:
            raise PageOutOfRangeError(pagination.page_number, 0)
        return self._history(provider_id, base_currency, date_range, [], PaginationInfo(1, 0, 0))

    @staticmethod
    def _history(
        provider_id: str,
        base_currency: str,
        date_range: DateRange,
        rates: list[ExchangeRate],
        info: PaginationInfo,
    ) -> ExchangeRateHistory:
        return ExchangeRateHistory(
            provider_id=provider_id,
            base_currency=base_currency,
            start_date=date_range.start,
            end_date=date_range.end,
            rates=tuple(rates),
            pagination=info,
        )


__all__ = ["HistoryService", "HistorySettings"]
