"""Cache backend strategy interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Mapping, Sequence


class CacheBackend(ABC):
    """Key-value store with per-key TTL and hash groups.

    Plain keys hold per-day records; hash groups hold PageStore pages, one
    field per page number, with a TTL applied to the group as a whole. Every
    method is a coroutine because each one is a suspension point. Backend
    library failures must surface as
    :class:`~fx_history.errors.CacheUnavailableError`, never as a miss.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value or ``None`` when absent or expired."""

    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        """Return values for ``keys`` in order; backends may batch this."""

        return [await self.get(key) for key in keys]

    @abstractmethod
    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Replace the value stored under ``key``."""

    @abstractmethod
    async def hash_get_field(self, group_key: str, field: str) -> str | None:
        """Return one field of a hash group."""

    @abstractmethod
    async def hash_set_fields(self, group_key: str, fields: Mapping[str, str]) -> None:
        """Create or overwrite fields of a hash group."""

    @abstractmethod
    async def hash_field_count(self, group_key: str) -> int:
        """Return how many fields a live hash group holds (0 when absent)."""

    @abstractmethod
    async def set_group_expiry(self, group_key: str, ttl: timedelta | None) -> None:
        """Apply ``ttl`` to the whole group; ``None`` removes any expiry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a plain key or a whole hash group."""

    async def ensure_schema(self) -> None:
        """Create required tables/collections and verify connectivity."""

    async def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Backends may override to release connections/resources."""


def ttl_seconds(ttl: timedelta | None) -> float | None:
    """Return ``ttl`` in seconds, rejecting non-positive durations."""

    if ttl is None:
        return None
    seconds = ttl.total_seconds()
    if seconds <= 0:
        raise ValueError("ttl must be a positive duration")
    return seconds


__all__ = ["CacheBackend", "ttl_seconds"]
