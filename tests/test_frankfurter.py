"""Frankfurter provider tests with a stubbed requests session."""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
import requests

from fx_history.errors import InvalidRangeError, ProviderUnavailableError
from fx_history.providers.frankfurter import FrankfurterProvider


class _FakeResponse:
    def __init__(self, status_code: int = 200, body: str = "{}") -> None:
        self.status_code = status_code
        self.text = body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(
                f"HTTP {self.status_code}", response=self  # type: ignore[arg-type]
            )

    def json(self, **kwargs: Any) -> Any:
        return json.loads(self.text, **kwargs)


class _FakeSession:
    def __init__(self, response: _FakeResponse | Exception) -> None:
        self.response = response
        self.calls: list[tuple[str, dict[str, str], float]] = []
        self.closed = False

    def get(self, url: str, params: dict[str, str], timeout: float) -> _FakeResponse:
        self.calls.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def close(self) -> None:
        self.closed = True


HISTORY_BODY = json.dumps(
    {
        "amount": 1.0,
        "base": "USD",
        "start_date": "2024-01-02",
        "end_date": "2024-01-03",
        "rates": {
            "2024-01-02": {"EUR": 0.91234, "INR": 83.2},
            "2024-01-03": {"EUR": 0.9151, "INR": 83.25},
        },
    }
)


@pytest.mark.asyncio
async def test_get_history_requests_range_and_parses_decimals() -> None:
    session = _FakeSession(_FakeResponse(body=HISTORY_BODY))
    provider = FrankfurterProvider(base_url="https://fx.example/", timeout=5, session=session)

    records = await provider.get_history("usd", date(2024, 1, 1), date(2024, 1, 3))

    assert session.calls == [("https://fx.example/2024-01-01..2024-01-03", {"base": "USD"}, 5)]
    assert [record.rate_date for record in records] == [date(2024, 1, 2), date(2024, 1, 3)]
    assert records[0].rates["EUR"] == Decimal("0.91234")
    assert records[1].rates["INR"] == Decimal("83.25")

    await provider.close()
    assert session.closed is True


@pytest.mark.asyncio
async def test_get_latest() -> None:
    body = json.dumps({"amount": 1.0, "base": "EUR", "date": "2024-03-01", "rates": {"USD": 1.08}})
    session = _FakeSession(_FakeResponse(body=body))
    provider = FrankfurterProvider(session=session)

    latest = await provider.get_latest("eur")

    assert session.calls[0][0] == "https://api.frankfurter.app/latest"
    assert latest.rate_date == date(2024, 3, 1)
    assert latest.rates == {"USD": Decimal("1.08")}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, expected",
    [
        (_FakeResponse(422, '{"message": "not found"}'), InvalidRangeError),
        (_FakeResponse(404, "not found"), InvalidRangeError),
        (_FakeResponse(503, "maintenance"), ProviderUnavailableError),
        (_FakeResponse(200, "<html>"), ProviderUnavailableError),
        (_FakeResponse(200, '{"rates": []}'), ProviderUnavailableError),
        (requests.ConnectionError("refused"), ProviderUnavailableError),
        (requests.Timeout("slow"), ProviderUnavailableError),
    ],
)
async def test_failures_are_mapped(response: Any, expected: type[Exception]) -> None:
    provider = FrankfurterProvider(session=_FakeSession(response))
    with pytest.raises(expected):
        await provider.get_history("USD", date(2024, 1, 1), date(2024, 1, 2))


@pytest.mark.asyncio
async def test_malformed_latest_payload() -> None:
    provider = FrankfurterProvider(session=_FakeSession(_FakeResponse(body='{"rates": {}}')))
    with pytest.raises(ProviderUnavailableError):
        await provider.get_latest("USD")


@pytest.mark.asyncio
async def test_reversed_range_is_rejected_locally() -> None:
    session = _FakeSession(_FakeResponse(body=HISTORY_BODY))
    provider = FrankfurterProvider(session=session)
    with pytest.raises(InvalidRangeError):
        await provider.get_history("USD", date(2024, 1, 3), date(2024, 1, 1))
    assert session.calls == []


def test_default_session_is_created_lazily() -> None:
    provider = FrankfurterProvider()
    session = provider.session
    assert isinstance(session, requests.Session)
    assert session.headers["Accept"] == "application/json"
    assert provider.session is session
    session.close()
