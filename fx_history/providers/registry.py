"""Explicit provider lookup table built once at startup."""

from __future__ import annotations

from typing import Iterable, Iterator

from fx_history.providers.base import ProviderId, RateProvider
from fx_history.utils.logger import get_logger

LOGGER = get_logger(__name__)


class ProviderRegistry:
    """Map :class:`ProviderId` values to provider instances.

    The default identifier is fixed at construction; :meth:`resolve` falls
    back to it whenever a request names no provider or an unknown one.
    """

    __slots__ = ("_providers", "default_provider_id")

    def __init__(
        self,
        providers: Iterable[RateProvider],
        *,
        default_provider_id: ProviderId | str = ProviderId.FRANKFURTER,
    ) -> None:
        self._providers: dict[ProviderId, RateProvider] = {}
        for provider in providers:
            if provider.provider_id in self._providers:
                raise ValueError(
                    f"Duplicate rate provider registered: {provider.provider_id.value}"
                )
            self._providers[provider.provider_id] = provider
        default = ProviderId.parse(default_provider_id)
        if default is None or default not in self._providers:
            raise ValueError(f"Default rate provider {default_provider_id!r} is not registered")
        self.default_provider_id = default

    def resolve(self, provider_id: ProviderId | str | None = None) -> RateProvider:
        """Return the requested provider or the default one."""

        parsed = ProviderId.parse(provider_id)
        if parsed is not None and parsed in self._providers:
            return self._providers[parsed]
        if provider_id is not None:
            LOGGER.warning(
                "Exchange rate provider %s not found. Using default provider %s.",
                provider_id,
                self.default_provider_id.value,
            )
        return self._providers[self.default_provider_id]

    @property
    def default(self) -> RateProvider:
        return self._providers[self.default_provider_id]

    def __contains__(self, provider_id: object) -> bool:
        if not isinstance(provider_id, str):
            return False
        return ProviderId.parse(provider_id) in self._providers

    def __iter__(self) -> Iterator[RateProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


__all__ = ["ProviderRegistry"]
