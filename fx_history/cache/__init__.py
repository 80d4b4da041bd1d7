"""Cache backends, key derivation and page storage for :mod:`fx_history`."""

from __future__ import annotations

from fx_history.cache.base_backend import CacheBackend
from fx_history.cache.keys import DEFAULT_KEY_SCHEME, CacheKeyScheme
from fx_history.cache.memory_backend import MemoryBackend
from fx_history.cache.page_store import Page, PageStore

__all__ = [
    "CacheBackend",
    "CacheKeyScheme",
    "DEFAULT_KEY_SCHEME",
    "MemoryBackend",
    "Page",
    "PageStore",
]
