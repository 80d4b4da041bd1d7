"""Fixed-size page storage for ordered result collections."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, Iterator, Sequence, TypeVar

from fx_history.cache.base_backend import CacheBackend
from fx_history.cache.keys import DEFAULT_KEY_SCHEME, CacheKeyScheme
from fx_history.models import PaginationInfo
from fx_history.utils.logger import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


def page_count(count: int, page_size: int) -> int:
    """Return how many pages of ``page_size`` are needed for ``count`` values."""

    if page_size < 1:
        raise ValueError("Page size must be greater than 0.")
    return math.ceil(count / page_size)


def split_into_pages(values: Sequence[T], page_size: int) -> Iterator[tuple[int, list[T]]]:
    """Yield ``(page_number, values)`` pairs numbered from 1, preserving order."""

    if not values:
        raise ValueError("Values cannot be an empty collection.")
    if page_size < 1:
        raise ValueError("Page size must be greater than 0.")
    for page_number, offset in enumerate(range(0, len(values), page_size), start=1):
        yield page_number, list(values[offset : offset + page_size])


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    values: list[T]
    pagination: PaginationInfo


class PageStore(Generic[T]):
    """Persist an ordered collection as numbered pages under a logical key.

    Each ``(key, page_size)`` pair maps to one hash group (see
    :meth:`~fx_history.cache.keys.CacheKeyScheme.group_key`). Every page is a
    JSON array stored in the field named after its page number, so the group's
    field count is the total page count.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        encode: Callable[[T], Any],
        decode: Callable[[Any], T],
        keys: CacheKeyScheme = DEFAULT_KEY_SCHEME,
    ) -> None:
        self._backend = backend
        self._encode = encode
        self._decode = decode
        self._keys = keys

    async def save(
        self,
        key: str,
        ordered_values: Sequence[T],
        page_size: int,
        ttl: timedelta | None = None,
    ) -> int:
        """Replace the ``(key, page_size)`` group with pages of ``ordered_values``.

        Returns the total page count.
        """

        group_key = self._keys.group_key(key, page_size)
        return await self._save_group(group_key, ordered_values, page_size, ttl)

    async def get_page(self, key: str, page_size: int, page_number: int) -> Page[T] | None:
        """Return one page, or ``None`` when the group is absent or too short."""

        return await self._get_group_page(self._keys.group_key(key, page_size), page_number)

    async def save_all(self, key: str, values: Sequence[T], ttl: timedelta | None = None) -> int:
        """Store ``values`` as a single page holding the whole collection."""

        group_key = self._keys.group_key(key, None)
        return await self._save_group(group_key, values, len(values) or 1, ttl)

    async def get_all(self, key: str) -> Page[T] | None:
        return await self._get_group_page(self._keys.group_key(key, None), 1)

    async def _save_group(
        self,
        group_key: str,
        ordered_values: Sequence[T],
        page_size: int,
        ttl: timedelta | None,
    ) -> int:
        pages = {
            str(number): json.dumps([self._encode(value) for value in chunk])
            for number, chunk in split_into_pages(ordered_values, page_size)
        }
        total = page_count(len(ordered_values), page_size)
        await self._backend.delete(group_key)
        await self._backend.hash_set_fields(group_key, pages)
        await self._backend.set_group_expiry(group_key, ttl)
        LOGGER.info(
            "Stored %s value(s) as %s page(s) under %s", len(ordered_values), total, group_key
        )
        return total

    async def _get_group_page(self, group_key: str, page_number: int) -> Page[T] | None:
        if page_number < 1:
            raise ValueError("Page number must be greater than 0.")
        serialized = await self._backend.hash_get_field(group_key, str(page_number))
        if serialized is None:
            return None
        total = await self._backend.hash_field_count(group_key)
        if page_number > total:
            # Group expired or was rebuilt between the two reads.
            return None
        values = [self._decode(item) for item in json.loads(serialized)]
        return Page(
            values=values,
            pagination=PaginationInfo(
                current_page_number=page_number,
                current_page_size=len(values),
                page_count_total=total,
            ),
        )


__all__ = ["Page", "PageStore", "page_count", "split_into_pages"]
