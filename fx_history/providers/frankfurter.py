"""HTTP client for the Frankfurter exchange-rate API (ECB reference rates)."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping

from fx_history.errors import InvalidRangeError, ProviderUnavailableError
from fx_history.models import ExchangeRate, normalise_currency
from fx_history.providers.base import ProviderId, RateProvider
from fx_history.utils.logger import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    import requests

LOGGER = get_logger(__name__)
FRANKFURTER_BASE_URL = "https://api.frankfurter.app"

# Statuses the API uses for malformed dates, unknown currencies or bad ranges.
_CALLER_ERROR_STATUSES = {400, 404, 422}


class FrankfurterProvider(RateProvider):
    """Fetch daily rates from Frankfurter using a shared ``requests`` session.

    ``requests`` is blocking, so each call runs on a worker thread; the await
    on that thread is the only suspension point of a fetch.
    """

    provider_id = ProviderId.FRANKFURTER

    def __init__(
        self,
        *,
        base_url: str = FRANKFURTER_BASE_URL,
        timeout: float = 30.0,
        session: "requests.Session | None" = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> "requests.Session":
        if self._session is None:
            import requests

            self._session = requests.Session()
            self._session.headers.update({"Accept": "application/json"})
        return self._session

    async def get_history(self, base_currency: str, start: date, end: date) -> list[ExchangeRate]:
        if start > end:
            raise InvalidRangeError("start date must not be after end date")
        base = normalise_currency(base_currency)
        LOGGER.info("Fetching %s rates from Frankfurter for %s..%s", base, start, end)
        payload = await asyncio.to_thread(
            self._get_json, f"/{start.isoformat()}..{end.isoformat()}", {"base": base}
        )
        return self._parse_history(payload)

    async def get_latest(self, base_currency: str) -> ExchangeRate:
        base = normalise_currency(base_currency)
        LOGGER.info("Fetching latest %s rates from Frankfurter", base)
        payload = await asyncio.to_thread(self._get_json, "/latest", {"base": base})
        try:
            return ExchangeRate.from_mapping(date.fromisoformat(payload["date"]), payload["rates"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderUnavailableError(f"Malformed Frankfurter response: {exc}") from exc

    def _get_json(self, path: str, params: Mapping[str, str]) -> Any:
        import requests

        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=dict(params), timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderUnavailableError(f"Frankfurter request to {url} failed: {exc}") from exc
        self._raise_with_context(response, url)
        try:
            return response.json(parse_float=Decimal)
        except ValueError as exc:
            raise ProviderUnavailableError(f"Frankfurter returned invalid JSON for {url}") from exc

    @staticmethod
    def _raise_with_context(response: "requests.Response", url: str) -> None:
        import requests

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = response.status_code
            if status in _CALLER_ERROR_STATUSES:
                raise InvalidRangeError(
                    f"Frankfurter rejected {url} with HTTP {status}: {response.text[:200]}"
                ) from exc
            raise ProviderUnavailableError(
                f"Frankfurter responded with HTTP {status} for {url}"
            ) from exc

    @staticmethod
    def _parse_history(payload: Any) -> list[ExchangeRate]:
        try:
            rates = payload["rates"]
            return [
                ExchangeRate.from_mapping(date.fromisoformat(day), day_rates)
                for day, day_rates in rates.items()
            ]
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ProviderUnavailableError(f"Malformed Frankfurter response: {exc}") from exc

    async def close(self) -> None:  # pragma: no cover - trivial cleanup
        if self._session is not None:
            self._session.close()


__all__ = ["FRANKFURTER_BASE_URL", "FrankfurterProvider"]
