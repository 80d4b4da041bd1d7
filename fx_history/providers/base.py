"""Rate provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from enum import Enum

from fx_history.models import ExchangeRate


class ProviderId(str, Enum):
    """Identifiers of the rate providers shipped with the package."""

    FRANKFURTER = "frankfurter"
    STATIC = "static"

    @classmethod
    def parse(cls, value: "str | ProviderId | None") -> "ProviderId | None":
        """Return the matching member, or ``None`` for blank/unknown identifiers."""

        if value is None or isinstance(value, ProviderId):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class RateProvider(ABC):
    """Common interface implemented by every remote rate source."""

    provider_id: ProviderId

    @abstractmethod
    async def get_history(
        self,
        base_currency: str,
        start: date,
        end: date,
    ) -> list[ExchangeRate]:
        """Return one record per published day within ``start``..``end``.

        Raises :class:`~fx_history.errors.ProviderUnavailableError` when the
        source cannot be reached and
        :class:`~fx_history.errors.InvalidRangeError` when it rejects the range.
        """

    @abstractmethod
    async def get_latest(self, base_currency: str) -> ExchangeRate:
        """Return the most recently published rates for ``base_currency``."""

    async def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Providers may override to release sessions/resources."""


__all__ = ["ProviderId", "RateProvider"]
