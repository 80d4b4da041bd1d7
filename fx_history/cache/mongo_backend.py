"""MongoDB cache backend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence

from fx_history.cache.base_backend import CacheBackend, ttl_seconds
from fx_history.errors import CacheUnavailableError
from fx_history.utils.logger import get_logger

try:  # pragma: no cover - optional dependency
    from pymongo import MongoClient
    from pymongo.collection import Collection
    from pymongo.errors import PyMongoError
except ModuleNotFoundError:  # pragma: no cover - handled dynamically
    MongoClient = None  # type: ignore[assignment]
    Collection = None  # type: ignore[assignment]
    PyMongoError = Exception  # type: ignore[assignment]

LOGGER = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MongoBackend(CacheBackend):
    """Cache backend persisting entries and page groups inside MongoDB.

    Entries live in ``fx_cache_entries`` (``_id`` = key) and page groups in
    ``fx_cache_groups`` with one sub-document field per page. Both carry an
    ``expires_at`` date covered by a TTL index; reads also filter on it since
    the TTL monitor only runs periodically.
    """

    def __init__(
        self,
        url: str,
        *,
        database: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if MongoClient is None:  # pragma: no cover - driver not installed
            raise ModuleNotFoundError("pymongo is required for MongoDB cache backends")
        self.url = url
        self._clock = clock
        self._client = MongoClient(url)
        db = self._client.get_default_database() if database is None else self._client[database]
        if db is None:
            raise ValueError("MongoDB connection URI must include a database name")
        self._entries: Collection = db["fx_cache_entries"]
        self._groups: Collection = db["fx_cache_groups"]

    async def _run(self, operation: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(operation, *args)
        except PyMongoError as exc:
            raise CacheUnavailableError(f"MongoDB cache operation failed: {exc}") from exc

    def _deadline(self, ttl: timedelta | None) -> datetime | None:
        seconds = ttl_seconds(ttl)
        return None if seconds is None else self._clock() + timedelta(seconds=seconds)

    def _live_filter(self, **query: Any) -> dict[str, Any]:
        query["$or"] = [{"expires_at": None}, {"expires_at": {"$gt": self._clock()}}]
        return query

    async def ensure_schema(self) -> None:
        def _create() -> None:
            LOGGER.info("Ensuring MongoDB fx cache collections exist")
            self._client.admin.command("ping")
            self._entries.create_index("expires_at", expireAfterSeconds=0)
            self._groups.create_index("expires_at", expireAfterSeconds=0)

        await self._run(_create)

    async def get(self, key: str) -> str | None:
        return (await self.get_many([key]))[0]

    async def get_many(self, keys: Sequence[str]) -> list[str | None]:
        if not keys:
            return []

        def _find() -> dict[str, str]:
            docs = self._entries.find(self._live_filter(_id={"$in": list(keys)}))
            return {doc["_id"]: doc["value"] for doc in docs}

        found = await self._run(_find)
        return [found.get(key) for key in keys]

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        document = {"_id": key, "value": value, "expires_at": self._deadline(ttl)}
        await self._run(self._entries.replace_one, {"_id": key}, document, True)

    async def _live_group(self, group_key: str) -> Mapping[str, Any] | None:
        return await self._run(self._groups.find_one, self._live_filter(_id=group_key))

    async def hash_get_field(self, group_key: str, field: str) -> str | None:
        group = await self._live_group(group_key)
        if group is None:
            return None
        return group.get("fields", {}).get(field)

    async def hash_set_fields(self, group_key: str, fields: Mapping[str, str]) -> None:
        if await self._live_group(group_key) is None:
            # An expired group not yet reaped by the TTL monitor must not leak old pages.
            await self._run(
                self._groups.replace_one,
                {"_id": group_key},
                {"_id": group_key, "fields": {}, "expires_at": None},
                True,
            )
        update = {"$set": {f"fields.{field}": value for field, value in fields.items()}}
        await self._run(self._groups.update_one, {"_id": group_key}, update, True)

    async def hash_field_count(self, group_key: str) -> int:
        group = await self._live_group(group_key)
        return 0 if group is None else len(group.get("fields", {}))

    async def set_group_expiry(self, group_key: str, ttl: timedelta | None) -> None:
        update = {"$set": {"expires_at": self._deadline(ttl)}}
        await self._run(self._groups.update_one, self._live_filter(_id=group_key), update)

    async def delete(self, key: str) -> None:
        await self._run(self._entries.delete_one, {"_id": key})
        await self._run(self._groups.delete_one, {"_id": key})

    async def close(self) -> None:  # pragma: no cover - trivial cleanup
        self._client.close()


__all__ = ["MongoBackend"]
