"""
CSV and JSON sleep parsers.

Both parsers are tolerant rather than validating: rows or items they
cannot read are skipped, and an input with nothing usable simply yields
an empty list. The import service reports "zero entries" as the failure.

CSV and JSON exports are already one row per night, so the entries are
built directly; there is no envelope aggregation step for them.
"""

import io
import logging
import math
from typing import Any, BinaryIO, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import ijson

from dates import normalize_clock, parse_calendar_date
from models import DailySleepEntry

logger = logging.getLogger(__name__)


# Candidate keys per logical field, tried in order. First non-empty wins.
JSON_FIELDS: Dict[str, Tuple[str, ...]] = {
    "date": ("date", "startDate", "start_date"),
    "bedtime": ("bedtime", "startTime", "start_time"),
    "wake_time": ("wakeTime", "endTime", "end_time", "wake_time"),
    "duration_minutes": ("duration", "durationMinutes", "duration_minutes"),
    "duration_hours": ("durationHours", "duration_hours"),
}

# Where entry arrays may live: ijson item prefix -> prefix of the array.
JSON_ENTRY_ARRAYS: Dict[str, str] = {
    "item": "",
    "entries.item": "entries",
    "data.item": "data",
}


def _to_minutes(value: Any, factor: float = 1.0) -> int:
    """Numeric `value * factor` rounded half up; 0 for anything non-numeric."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        minutes = float(value) * factor
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(minutes):
        return 0
    return int(math.floor(minutes + 0.5))


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def _split_csv_line(line: str) -> List[str]:
    return [c.strip().replace('"', "").strip() for c in line.split(",")]


def parse_sleep_csv(lines: Iterable[str], source: str = "apple_health") -> List[DailySleepEntry]:
    """Parse "date, bedtime, wake time[, hours]" rows.

    The first non-blank line is a header and is discarded without looking
    at it. A row needs a readable date and at least one of bedtime/wake
    time; everything else is skipped silently.
    """
    entries: List[DailySleepEntry] = []
    header_seen = False
    skipped = 0

    for line in lines:
        if not line.strip():
            continue
        if not header_seen:
            header_seen = True
            continue

        cols = _split_csv_line(line)
        if len(cols) < 3:
            skipped += 1
            continue

        raw_date, raw_bed, raw_wake = cols[0], cols[1], cols[2]
        day = parse_calendar_date(raw_date)
        if day is None or not (raw_bed or raw_wake):
            skipped += 1
            continue

        entries.append(DailySleepEntry(
            date=day.isoformat(),
            bedtime=normalize_clock(raw_bed),
            wake_time=normalize_clock(raw_wake),
            duration_minutes=_to_minutes(cols[3], 60) if len(cols) > 3 and cols[3] else 0,
            source=source,
        ))

    if skipped:
        logger.debug("CSV: skipped %d rows", skipped)
    return entries


def parse_sleep_csv_text(text: str, source: str = "apple_health") -> List[DailySleepEntry]:
    return parse_sleep_csv(text.splitlines(), source=source)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def first_present(item: Dict[str, Any], field: str) -> Any:
    """Value of the first candidate key for `field` that is set in `item`."""
    for key in JSON_FIELDS[field]:
        value = item.get(key)
        if value is not None and value != "":
            return value
    return None


def _iter_json_items(stream: BinaryIO) -> Iterator[Any]:
    """Stream the entry objects of a JSON export.

    Entries come from a top-level array, else from an `entries` array,
    else from a `data` array. An `entries` array wins even when it is
    empty, so `data` items are held back until the end of the document.
    """
    events = ijson.parse(stream, use_float=True)
    open_arrays = set()
    has_entries = False
    held: List[Any] = []

    for prefix, event, value in events:
        if event == "start_array" and prefix in JSON_ENTRY_ARRAYS.values():
            open_arrays.add(prefix)
            if prefix == "entries":
                has_entries = True
                held = []
            continue
        if event == "end_array":
            open_arrays.discard(prefix)
            continue
        if event != "start_map" or JSON_ENTRY_ARRAYS.get(prefix) not in open_arrays:
            continue

        builder = ijson.ObjectBuilder()
        builder.event(event, value)
        for inner_prefix, inner_event, inner_value in events:
            builder.event(inner_event, inner_value)
            if inner_prefix == prefix and inner_event == "end_map":
                break

        if prefix == "data.item":
            if not has_entries:
                held.append(builder.value)
        else:
            yield builder.value

    yield from held


def _entry_from_json(item: Dict[str, Any], source: str) -> Optional[DailySleepEntry]:
    raw_date = first_present(item, "date")
    day = parse_calendar_date(str(raw_date)) if raw_date is not None else None
    if day is None:
        return None

    minutes = first_present(item, "duration_minutes")
    if minutes is not None:
        duration = _to_minutes(minutes)
    else:
        duration = _to_minutes(first_present(item, "duration_hours"), 60)

    return DailySleepEntry(
        date=day.isoformat(),
        bedtime=normalize_clock(first_present(item, "bedtime")),
        wake_time=normalize_clock(first_present(item, "wake_time")),
        duration_minutes=duration,
        source=source,
    )


def parse_sleep_json(
    source_data: Union[str, bytes, BinaryIO], source: str = "apple_health"
) -> List[DailySleepEntry]:
    """Parse a JSON sleep export.

    Accepts a top-level array of entries or an object holding an `entries`
    or `data` array. Malformed JSON returns an empty list.
    """
    if isinstance(source_data, str):
        source_data = source_data.encode("utf-8")
    if isinstance(source_data, bytes):
        source_data = io.BytesIO(source_data)

    entries: List[DailySleepEntry] = []
    skipped = 0
    try:
        for item in _iter_json_items(source_data):
            entry = _entry_from_json(item, source) if isinstance(item, dict) else None
            if entry is None:
                skipped += 1
                continue
            entries.append(entry)
    except (ijson.JSONError, ValueError) as e:
        logger.info("JSON: unreadable document, ignoring it (%s)", e)
        return []

    if skipped:
        logger.debug("JSON: skipped %d items", skipped)
    return entries
