from __future__ import annotations

from datetime import date

import pytest

from fx_history.cache.keys import DEFAULT_KEY_SCHEME, CacheKeyScheme
from fx_history.errors import InvalidRangeError
from fx_history.utils.date_range import DateRange


def test_day_key_layout_is_normalised() -> None:
    key = DEFAULT_KEY_SCHEME.day_key(" Frankfurter ", "usd", date(2024, 1, 5))
    assert key == "frankfurter:USD:2024-01-05"


def test_range_and_group_keys() -> None:
    range_key = DEFAULT_KEY_SCHEME.range_key(
        "frankfurter", "EUR", date(2024, 1, 1), date(2024, 1, 31)
    )
    assert range_key == "frankfurter:EUR:2024-01-01..2024-01-31"
    assert CacheKeyScheme.group_key(range_key, 10) == f"{range_key}#p10"
    assert CacheKeyScheme.group_key(range_key, None) == f"{range_key}#all"
    assert range_key.endswith(DateRange(date(2024, 1, 1), date(2024, 1, 31)).token())


def test_page_sizes_never_share_a_group() -> None:
    range_key = DEFAULT_KEY_SCHEME.range_key("static", "USD", date(2024, 1, 1), date(2024, 1, 2))
    groups = {CacheKeyScheme.group_key(range_key, size) for size in (1, 2, 10, None)}
    assert len(groups) == 4


def test_day_and_range_namespaces_do_not_collide() -> None:
    day = date(2024, 1, 1)
    day_key = DEFAULT_KEY_SCHEME.day_key("static", "USD", day)
    range_key = DEFAULT_KEY_SCHEME.range_key("static", "USD", day, day)
    assert day_key != range_key


def test_parse_day_key_roundtrip() -> None:
    key = DEFAULT_KEY_SCHEME.day_key("frankfurter", "GBP", date(2023, 12, 31))
    assert DEFAULT_KEY_SCHEME.parse_day_key(key) == ("frankfurter", "GBP", date(2023, 12, 31))
    with pytest.raises(ValueError):
        DEFAULT_KEY_SCHEME.parse_day_key("frankfurter:GBP:2024-01-01..2024-01-02")


def test_custom_separator() -> None:
    scheme = CacheKeyScheme(separator="|")
    assert scheme.day_key("static", "usd", date(2024, 2, 1)) == "static|USD|2024-02-01"


@pytest.mark.parametrize("separator", ["", ".", "#", "-", "::."])
def test_rejects_ambiguous_separator(separator: str) -> None:
    with pytest.raises(ValueError):
        CacheKeyScheme(separator=separator)


def test_rejects_blank_or_separator_components() -> None:
    with pytest.raises(ValueError):
        DEFAULT_KEY_SCHEME.prefix("", "USD")
    with pytest.raises(ValueError):
        DEFAULT_KEY_SCHEME.prefix("static", "US:D")
    with pytest.raises(ValueError):
        CacheKeyScheme.group_key("static:USD:2024-01-01..2024-01-02", 0)


def test_range_key_rejects_reversed_span() -> None:
    with pytest.raises(InvalidRangeError):
        DEFAULT_KEY_SCHEME.range_key("static", "USD", date(2024, 1, 2), date(2024, 1, 1))
