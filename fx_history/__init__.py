"""Public interface for the fx_history package."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from importlib import metadata as importlib_metadata
from typing import Iterable
from urllib.parse import ParseResult, unquote, urlparse, urlunparse

from fx_history.cache.base_backend import CacheBackend
from fx_history.cache.memory_backend import MemoryBackend
from fx_history.errors import (
    CacheUnavailableError,
    FxHistoryError,
    InvalidRangeError,
    PageOutOfRangeError,
    ProviderUnavailableError,
)
from fx_history.history.service import HistoryService, HistorySettings
from fx_history.models import ExchangeRate, ExchangeRateHistory, PaginationInfo, PaginationOptions
from fx_history.providers.base import ProviderId, RateProvider
from fx_history.providers.frankfurter import FrankfurterProvider
from fx_history.providers.registry import ProviderRegistry

__all__ = [
    "__version__",
    "CacheBackendKind",
    "CacheConnectionInfo",
    "CacheUnavailableError",
    "ExchangeRate",
    "ExchangeRateHistory",
    "FxHistory",
    "FxHistoryError",
    "HistoryService",
    "HistorySettings",
    "InvalidRangeError",
    "PageOutOfRangeError",
    "PaginationInfo",
    "PaginationOptions",
    "ProviderId",
    "ProviderRegistry",
    "ProviderUnavailableError",
]

try:
    __version__ = importlib_metadata.version("fx-history")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    __version__ = "0.1.0"

# Matches ``DATABASE_NAME=<db>`` as its own query option or glued onto the
# previous value, as some hosted Mongo consoles emit it.
_DATABASE_NAME_OPTION = re.compile(r"&?DATABASE_NAME=([^&]*)", re.IGNORECASE)


class CacheBackendKind(str, Enum):
    """Supported cache stores for FxHistory."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGODB = "mongodb"

    @classmethod
    def resolve_backend_and_scheme(cls, scheme: str) -> tuple["CacheBackendKind", str]:
        """Map a DSN scheme to its backend and the scheme handed to the driver.

        ``postgres`` is spelled ``postgresql`` for SQLAlchemy. A ``+suffix``
        (``mysql+pymysql``, ``mongodb+srv``) is carried over unchanged.
        """

        family, _, suffix = scheme.lower().partition("+")
        kind = _BACKEND_BY_SCHEME.get(family)
        if kind is None:
            known = ", ".join(sorted(_BACKEND_BY_SCHEME))
            raise ValueError(f"Unsupported cache backend {scheme!r}; expected one of {known}")
        if kind in (cls.MEMORY, cls.SQLITE):
            return kind, family
        driver_scheme = "postgresql" if kind is cls.POSTGRES else family
        return kind, f"{driver_scheme}+{suffix}" if suffix else driver_scheme

    @classmethod
    def from_scheme(cls, scheme: str) -> "CacheBackendKind":
        backend, _ = cls.resolve_backend_and_scheme(scheme)
        return backend


_BACKEND_BY_SCHEME: dict[str, CacheBackendKind] = {
    "memory": CacheBackendKind.MEMORY,
    "sqlite": CacheBackendKind.SQLITE,
    "mysql": CacheBackendKind.MYSQL,
    "postgres": CacheBackendKind.POSTGRES,
    "postgresql": CacheBackendKind.POSTGRES,
    "mongodb": CacheBackendKind.MONGODB,
}


@dataclass(slots=True)
class CacheConnectionInfo:
    """Cache store selected by a DSN, plus the database name it targets."""

    backend: CacheBackendKind
    url: str
    name: str | None = None

    @classmethod
    def from_url(cls, url: str) -> "CacheConnectionInfo":
        scheme, separator, _ = url.partition("://")
        if not separator:
            raise ValueError("CACHE_URL must include a scheme (e.g. sqlite:// or mongodb://)")
        backend, driver_scheme = CacheBackendKind.resolve_backend_and_scheme(scheme)
        if backend in {CacheBackendKind.MEMORY, CacheBackendKind.SQLITE}:
            # File paths must survive verbatim; urlunparse would collapse ``sqlite:///``.
            return cls(backend=backend, url=url)

        parsed, option_name = cls._split_database_name(urlparse(url))
        parsed = parsed._replace(scheme=driver_scheme)
        path_name = parsed.path.lstrip("/") or None
        return cls(backend=backend, url=urlunparse(parsed), name=path_name or option_name)

    @staticmethod
    def _split_database_name(parsed: ParseResult) -> tuple[ParseResult, str | None]:
        """Remove ``DATABASE_NAME`` from the query; use it as the path if none is set."""

        if _DATABASE_NAME_OPTION.search(parsed.query) is None:
            return parsed, None
        names = [unquote(value) for value in _DATABASE_NAME_OPTION.findall(parsed.query) if value]
        query = _DATABASE_NAME_OPTION.sub("", parsed.query).strip("&")
        name = names[-1] if names else None
        path = parsed.path
        if name and path in ("", "/"):
            path = f"/{name}"
        return parsed._replace(query=query, path=path), name

    @property
    def is_memory(self) -> bool:
        return self.backend is CacheBackendKind.MEMORY

    @property
    def is_relational(self) -> bool:
        return self.backend in {
            CacheBackendKind.SQLITE,
            CacheBackendKind.MYSQL,
            CacheBackendKind.POSTGRES,
        }


class FxHistory:
    """Package facade wiring a cache store, providers and the history service."""

    __slots__ = ("connection_info", "settings", "backend", "registry", "service")

    __version__ = __version__

    def __init__(
        self,
        cache_config: CacheConnectionInfo | str | None = None,
        *,
        settings: HistorySettings | None = None,
        providers: Iterable[RateProvider] | None = None,
    ) -> None:
        """Configure where rates are cached and which providers serve them.

        ``cache_config`` accepts a ``CacheConnectionInfo`` or a DSN such as
        ``sqlite:///fx-cache.db`` or ``mongodb://host/fx``. When omitted the
        in-process memory cache is used. ``providers`` defaults to the
        Frankfurter provider configured from ``settings``.
        """

        self.settings = settings or HistorySettings()
        self.connection_info = self._build_connection_info(cache_config)
        self.backend: CacheBackend = self._build_backend(self.connection_info)
        if providers is None:
            providers = [
                FrankfurterProvider(
                    base_url=self.settings.frankfurter_base_url,
                    timeout=self.settings.request_timeout,
                )
            ]
        self.registry = ProviderRegistry(
            providers, default_provider_id=self.settings.default_provider_id
        )
        self.service = HistoryService(self.registry, self.backend, settings=self.settings)

    @staticmethod
    def _build_connection_info(
        cache_config: CacheConnectionInfo | str | None,
    ) -> CacheConnectionInfo:
        if isinstance(cache_config, CacheConnectionInfo):
            return cache_config
        if isinstance(cache_config, str):
            return CacheConnectionInfo.from_url(cache_config)
        return CacheConnectionInfo(backend=CacheBackendKind.MEMORY, url="memory://")

    @staticmethod
    def _build_backend(info: CacheConnectionInfo) -> CacheBackend:
        if info.is_memory:
            return MemoryBackend()
        if info.is_relational:
            from fx_history.cache.relational_backend import RelationalBackend

            return RelationalBackend(info.url)
        if info.backend is CacheBackendKind.MONGODB:
            from fx_history.cache.mongo_backend import MongoBackend

            return MongoBackend(info.url, database=info.name)
        raise ValueError(f"Unsupported backend: {info.backend}")

    async def ensure_schema(self) -> None:
        """Create cache tables/collections for persistent backends."""

        await self.backend.ensure_schema()

    async def get_history(
        self,
        base_currency: str,
        start_date: str | date,
        end_date: str | date,
        pagination: PaginationOptions | None = None,
        *,
        provider_id: ProviderId | str | None = None,
    ) -> ExchangeRateHistory:
        return await self.service.get_history(
            base_currency, start_date, end_date, pagination, provider_id=provider_id
        )

    async def get_latest(
        self, base_currency: str, *, provider_id: ProviderId | str | None = None
    ) -> ExchangeRate:
        return await self.service.get_latest(base_currency, provider_id=provider_id)

    def history(
        self,
        base_currency: str,
        start_date: str | date,
        end_date: str | date,
        pagination: PaginationOptions | None = None,
        *,
        provider_id: ProviderId | str | None = None,
    ) -> ExchangeRateHistory:
        """Blocking wrapper around :meth:`get_history` for scripts and notebooks."""

        return asyncio.run(
            self.get_history(
                base_currency, start_date, end_date, pagination, provider_id=provider_id
            )
        )

    def latest(
        self, base_currency: str, *, provider_id: ProviderId | str | None = None
    ) -> ExchangeRate:
        """Blocking wrapper around :meth:`get_latest`."""

        return asyncio.run(self.get_latest(base_currency, provider_id=provider_id))

    async def close(self) -> None:
        for provider in self.registry:
            await provider.close()
        await self.backend.close()
