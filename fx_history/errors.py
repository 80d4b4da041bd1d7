"""Exception hierarchy raised by the history engine."""

from __future__ import annotations


class FxHistoryError(Exception):
    """Base class for every error raised by :mod:`fx_history`."""


class InvalidRangeError(FxHistoryError, ValueError):
    """The requested date range is unparseable or ends before it starts."""


class PageOutOfRangeError(FxHistoryError, LookupError):
    """The requested page number exceeds the stored page count."""

    def __init__(self, page_number: int, page_count_total: int) -> None:
        super().__init__(
            f"Page {page_number} requested but only {page_count_total} page(s) are available"
        )
        self.page_number = page_number
        self.page_count_total = page_count_total


class ProviderUnavailableError(FxHistoryError, RuntimeError):
    """The remote rate provider could not serve the request."""


class CacheUnavailableError(FxHistoryError, RuntimeError):
    """The cache backend is unreachable or rejected the operation."""


__all__ = [
    "CacheUnavailableError",
    "FxHistoryError",
    "InvalidRangeError",
    "PageOutOfRangeError",
    "ProviderUnavailableError",
]
