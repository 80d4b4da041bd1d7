"""Remote exchange-rate sources and their registry."""

from __future__ import annotations

from fx_history.providers.base import ProviderId, RateProvider
from fx_history.providers.frankfurter import FrankfurterProvider
from fx_history.providers.registry import ProviderRegistry
from fx_history.providers.static import StaticRateProvider

__all__ = [
    "FrankfurterProvider",
    "ProviderId",
    "ProviderRegistry",
    "RateProvider",
    "StaticRateProvider",
]
