from __future__ import annotations

from datetime import date, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from dates import normalize_clock, parse_calendar_date, parse_timestamp, resolve_timezone


def test_apple_timestamp_keeps_its_offset() -> None:
    dt = parse_timestamp("2025-02-10 08:45:23 -0500")

    assert dt.utcoffset() == timedelta(hours=-5)
    assert dt.hour == 8


def test_timestamp_converted_to_configured_zone() -> None:
    dt = parse_timestamp("2025-02-10 08:45:23 -0500", ZoneInfo("UTC"))

    assert dt.hour == 13
    assert dt.utcoffset() == timedelta(0)


def test_naive_timestamp_is_read_in_configured_zone() -> None:
    tz = timezone(timedelta(hours=2))
    dt = parse_timestamp("2025-02-10T08:45:00", tz)

    assert dt.tzinfo is tz
    assert dt.hour == 8


@pytest.mark.parametrize("value", ["", "soon", "2025-13-40 10:00:00 +0000"])
def test_bad_timestamps_return_none(value: str) -> None:
    assert parse_timestamp(value) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01-01", date(2024, 1, 1)),
        (" 2024-01-01 ", date(2024, 1, 1)),
        ("2024-01-01T23:59:00Z", date(2024, 1, 1)),
        ("2024-01-01 23:10:00 -0800", date(2024, 1, 1)),
        ("2024/01/02", date(2024, 1, 2)),
        ("01/03/2024", date(2024, 1, 3)),
        ("nope", None),
        ("", None),
    ],
)
def test_parse_calendar_date(value: str, expected) -> None:
    assert parse_calendar_date(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("23:10", "23:10"),
        ("6:40", "06:40"),
        ("06:40:59", "06:40"),
        ("11:10 pm", "23:10"),
        ("7:05AM", "07:05"),
        ("2024-01-01 22:45:00 +0000", "22:45"),
        ("", ""),
        (None, ""),
        ("late", ""),
    ],
)
def test_normalize_clock(value, expected: str) -> None:
    assert normalize_clock(value) == expected


def test_resolve_timezone() -> None:
    assert resolve_timezone("") is None
    assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
