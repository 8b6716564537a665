"""
Date and clock helpers shared by the import parsers.

Apple Health writes timestamps like "2025-02-10 08:45:23 -0500". Other
exports use ISO-8601. Every helper here is tolerant: unparseable input
returns None (or an empty string for clocks) so callers can skip the row.
"""

import math
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

APPLE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %z"

_EXTRA_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%d.%m.%Y")
_CLOCK_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I:%M:%S %p")


def resolve_timezone(name: str) -> Optional[tzinfo]:
    """Return the zone named by `name`, or None to keep each timestamp's own offset."""
    if not name:
        return None
    return ZoneInfo(name)


def _parse_datetime(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, APPLE_TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def parse_timestamp(value: str, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse a timestamp into an aware datetime.

    Naive values are read as wall-clock time in `tz` (or the host zone when
    `tz` is None). Aware values are converted to `tz` when one is given and
    otherwise keep the offset they were written with.
    """
    if not value:
        return None
    dt = _parse_datetime(value.strip())
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz) if tz is not None else dt.astimezone()
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt


def parse_calendar_date(value: str) -> Optional[date]:
    """Truncate a date or timestamp string to its calendar date."""
    if not value:
        return None
    value = value.strip()
    dt = _parse_datetime(value)
    if dt is not None:
        return dt.date()
    for fmt in _EXTRA_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def normalize_clock(value) -> str:
    """Return `value` as "HH:MM", or "" when it is empty or unreadable."""
    if value is None:
        return ""
    value = str(value).strip()
    if not value:
        return ""
    for fmt in _CLOCK_FORMATS:
        try:
            return datetime.strptime(value.upper(), fmt).strftime("%H:%M")
        except ValueError:
            continue
    dt = _parse_datetime(value)
    if dt is not None:
        return clock_of(dt)
    return ""


def clock_of(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def round_minutes(delta: timedelta) -> int:
    """Minutes in `delta`, rounded half up."""
    return int(math.floor(delta.total_seconds() / 60 + 0.5))
