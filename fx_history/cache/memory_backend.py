"""In-process cache backend."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Callable, Mapping

from fx_history.cache.base_backend import CacheBackend, ttl_seconds


class MemoryBackend(CacheBackend):
    """Dictionary backed cache for tests and single-process deployments.

    Expired entries are evicted when read, and writes sweep the whole store at
    most once per ``sweep_interval`` seconds so keys that are never read again
    do not accumulate.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ) -> None:
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._values: dict[str, tuple[str, float | None]] = {}
        self._groups: dict[str, dict[str, str]] = {}
        self._group_expiry: dict[str, float] = {}

    def _deadline(self, ttl: timedelta | None) -> float | None:
        seconds = ttl_seconds(ttl)
        return None if seconds is None else self._clock() + seconds

    def _expired(self, deadline: float | None) -> bool:
        return deadline is not None and deadline <= self._clock()

    def _live_group(self, group_key: str) -> dict[str, str] | None:
        if self._expired(self._group_expiry.get(group_key)):
            self._groups.pop(group_key, None)
            self._group_expiry.pop(group_key, None)
        return self._groups.get(group_key)

    def purge_expired(self) -> int:
        """Drop every expired value and group; return how many were removed."""

        now = self._clock()
        stale_values = [
            key
            for key, (_, deadline) in self._values.items()
            if deadline is not None and deadline <= now
        ]
        stale_groups = [key for key, deadline in self._group_expiry.items() if deadline <= now]
        for key in stale_values:
            del self._values[key]
        for key in stale_groups:
            self._groups.pop(key, None)
            del self._group_expiry[key]
        self._next_sweep = now + self._sweep_interval
        return len(stale_values) + len(stale_groups)

    def _maybe_sweep(self) -> None:
        if self._clock() >= self._next_sweep:
            self.purge_expired()

    async def get(self, key: str) -> str | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if self._expired(deadline):
            del self._values[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        self._maybe_sweep()
        self._values[key] = (value, self._deadline(ttl))

    async def hash_get_field(self, group_key: str, field: str) -> str | None:
        group = self._live_group(group_key)
        return None if group is None else group.get(field)

    async def hash_set_fields(self, group_key: str, fields: Mapping[str, str]) -> None:
        self._maybe_sweep()
        group = self._live_group(group_key)
        if group is None:
            group = self._groups[group_key] = {}
        group.update(fields)

    async def hash_field_count(self, group_key: str) -> int:
        group = self._live_group(group_key)
        return 0 if group is None else len(group)

    async def set_group_expiry(self, group_key: str, ttl: timedelta | None) -> None:
        if self._live_group(group_key) is None:
            return None
        deadline = self._deadline(ttl)
        if deadline is None:
            self._group_expiry.pop(group_key, None)
        else:
            self._group_expiry[group_key] = deadline

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._groups.pop(key, None)
        self._group_expiry.pop(key, None)

    def __len__(self) -> int:
        return len(self._values) + len(self._groups)


__all__ = ["MemoryBackend"]
