"""Fetch MISS segments from a provider, write them through and merge by date."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Sequence

from fx_history.cache.base_backend import CacheBackend
from fx_history.cache.keys import DEFAULT_KEY_SCHEME, CacheKeyScheme
from fx_history.errors import ProviderUnavailableError
from fx_history.history.segmenter import encode_day
from fx_history.models import ExchangeRate, Segment
from fx_history.providers.base import RateProvider
from fx_history.utils.date_range import iter_days
from fx_history.utils.logger import get_logger

LOGGER = get_logger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class BackfillOrchestrator:
    """Fill the gaps of a segment plan with one ranged provider call per MISS run.

    MISS segments are fetched concurrently (bounded by ``max_concurrency``).
    The first failing segment cancels its siblings and propagates, so callers
    never receive a partial history; records already written through stay
    cached.

    Past days inside a fetched span that the provider did not publish
    (weekends, holidays) are cached as unpublished markers so warm requests do
    not ask for them again. Days from ``today`` on are left uncached because
    their rates may still appear.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        keys: CacheKeyScheme = DEFAULT_KEY_SCHEME,
        ttl: timedelta | None = timedelta(hours=24),
        max_concurrency: int = 4,
        today: Callable[[], date] = utc_today,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._backend = backend
        self._keys = keys
        self._ttl = ttl
        self._max_concurrency = max_concurrency
        self._today = today

    async def backfill(
        self,
        provider: RateProvider,
        base_currency: str,
        segments: Sequence[Segment],
    ) -> list[ExchangeRate]:
        """Return the merged, date-ordered published records covering ``segments``."""

        merged: dict[date, ExchangeRate] = {
            segment.start_date: segment.cached_value
            for segment in segments
            if not segment.is_miss
            and segment.cached_value is not None
            and segment.cached_value.is_published
        }
        misses = [segment for segment in segments if segment.is_miss]
        if misses:
            semaphore = asyncio.Semaphore(self._max_concurrency)
            tasks = [
                asyncio.ensure_future(self._fill_segment(semaphore, provider, base_currency, miss))
                for miss in misses
            ]
            try:
                fetched = await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            for records in fetched:
                for record in records:
                    merged[record.rate_date] = record
        return [merged[day] for day in sorted(merged)]

    async def _fill_segment(
        self,
        semaphore: asyncio.Semaphore,
        provider: RateProvider,
        base_currency: str,
        segment: Segment,
    ) -> list[ExchangeRate]:
        provider_id = provider.provider_id.value
        async with semaphore:
            records = await provider.get_history(
                base_currency, segment.start_date, segment.end_date
            )
            in_span: dict[date, ExchangeRate] = {}
            for record in records:
                if not segment.start_date <= record.rate_date <= segment.end_date:
                    # Frankfurter answers a range starting on a closed day with the
                    # preceding business day.
                    LOGGER.debug(
                        "Dropping %s from provider %s, outside %s..%s",
                        record.rate_date,
                        provider_id,
                        segment.start_date,
                        segment.end_date,
                    )
                    continue
                if record.rate_date in in_span:
                    raise ProviderUnavailableError(
                        f"Provider {provider_id} returned {record.rate_date} twice"
                    )
                in_span[record.rate_date] = record
            for record in in_span.values():
                key = self._keys.day_key(provider_id, base_currency, record.rate_date)
                await self._backend.set(key, encode_day(record), self._ttl)
            await self._mark_unpublished(provider_id, base_currency, segment, in_span)
            return [in_span[day] for day in sorted(in_span)]

    async def _mark_unpublished(
        self,
        provider_id: str,
        base_currency: str,
        segment: Segment,
        published: dict[date, ExchangeRate],
    ) -> None:
        today = self._today()
        omitted = [
            day
            for day in iter_days(segment.start_date, segment.end_date)
            if day not in published and day < today
        ]
        if len(published) < segment.day_count:
            LOGGER.debug(
                "Provider %s published %s of %s day(s) for %s..%s",
                provider_id,
                len(published),
                segment.day_count,
                segment.start_date,
                segment.end_date,
            )
        for day in omitted:
            key = self._keys.day_key(provider_id, base_currency, day)
            await self._backend.set(key, encode_day(ExchangeRate.unpublished(day)), self._ttl)


__all__ = ["BackfillOrchestrator", "utc_today"]
