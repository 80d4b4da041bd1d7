"""Partition a date range into cached (HIT) and uncached (MISS) runs."""

from __future__ import annotations

import json
from datetime import date
from typing import Iterable

from fx_history.cache.base_backend import CacheBackend
from fx_history.cache.keys import DEFAULT_KEY_SCHEME, CacheKeyScheme
from fx_history.models import ExchangeRate, Segment
from fx_history.utils.date_range import DateRange
from fx_history.utils.logger import get_logger

LOGGER = get_logger(__name__)


def encode_day(rate: ExchangeRate) -> str:
    """Serialise the rates of one day for its per-day cache entry."""

    return json.dumps({currency: str(value) for currency, value in rate.rates.items()})


def decode_day(day: date, raw: str) -> ExchangeRate:
    return ExchangeRate.from_mapping(day, json.loads(raw))


def build_segments(lookups: Iterable[tuple[date, ExchangeRate | None]]) -> list[Segment]:
    """Walk ``(day, cached_value)`` pairs in ascending order and emit segments.

    Each hit becomes its own single-day HIT segment and closes any pending
    MISS run; consecutive misses accumulate into one MISS segment. Runs are
    never merged across an intervening hit.
    """

    segments: list[Segment] = []
    pending: list[date] = []
    for day, cached in lookups:
        if cached is None:
            pending.append(day)
            continue
        if pending:
            segments.append(Segment.miss(pending[0], pending[-1]))
            pending = []
        segments.append(Segment.hit(cached))
    if pending:
        segments.append(Segment.miss(pending[0], pending[-1]))
    return segments


class RangeSegmenter:
    """Classify every day of a range against the per-day cache namespace."""

    def __init__(self, backend: CacheBackend, keys: CacheKeyScheme = DEFAULT_KEY_SCHEME) -> None:
        self._backend = backend
        self._keys = keys

    async def segment(
        self,
        provider_id: str,
        base_currency: str,
        date_range: DateRange,
    ) -> list[Segment]:
        days = list(date_range.days())
        keys = [self._keys.day_key(provider_id, base_currency, day) for day in days]
        raw_values = await self._backend.get_many(keys)
        lookups = [
            (day, self._decode(key, day, raw)) for day, key, raw in zip(days, keys, raw_values)
        ]
        segments = build_segments(lookups)
        LOGGER.debug(
            "Segmented %s into %s segment(s), %s miss run(s)",
            date_range.token(),
            len(segments),
            sum(1 for segment in segments if segment.is_miss),
        )
        return segments

    @staticmethod
    def _decode(key: str, day: date, raw: str | None) -> ExchangeRate | None:
        if raw is None:
            return None
        try:
            return decode_day(day, raw)
        except (ValueError, TypeError, AttributeError) as exc:
            LOGGER.warning("Ignoring undecodable cache entry %s: %s", key, exc)
            return None


__all__ = ["RangeSegmenter", "build_segments", "decode_day", "encode_day"]
