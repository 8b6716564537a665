"""
Streaming sleep extraction from Apple Health export.xml.

export.xml regularly exceeds a few hundred MB, so it is never loaded (or
even decoded) as a whole. `SleepXMLScanner` is fed raw byte chunks:

1. bytes go through an incremental UTF-8 decoder (a multi-byte character
   split across two chunks is decoded correctly) and onto a text buffer;
2. the buffer is tokenized by hand: find `<Record`, then the end of that
   record (`/>` on the opening tag, or `</Record>`). A record whose end
   has not arrived yet stays in the buffer until the next chunk;
3. complete sleep-analysis records are merged into a `DailyAggregator`;
4. the consumed prefix is dropped, so the buffer only ever holds one
   pending record (or a few characters that might start one).

A pending record that grows past `max_pending` characters is malformed
input as far as we are concerned and gets dropped. That loses data, but
keeps memory bounded no matter what the file contains.

The XML is never validated. Attributes are pulled out of the opening tag
with regexes, so attribute order does not matter.
"""

import codecs
import logging
import re
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from aggregator import DailyAggregator
from dates import parse_timestamp
from models import DailySleepEntry, RawInterval

logger = logging.getLogger(__name__)

SLEEP_ANALYSIS_TYPE = "HKCategoryTypeIdentifierSleepAnalysis"

RECORD_START = "<Record"
RECORD_CLOSE = "</Record>"

# Opening tag of a record; quoted values may contain '>'.
_OPEN_TAG = re.compile(r'<Record(?=[\s/>])((?:[^>"]|"[^"]*")*)>')
_ATTRIBUTE = re.compile(r'(?:^|\s)([A-Za-z_:][\w:.-]*)\s*=\s*"([^"]*)"')
_NUMERIC_SLEEP_CODE = re.compile(r"^[1-5]$")


def parse_attributes(tag_body: str) -> Dict[str, str]:
    """Attributes of an opening tag body, in any order."""
    return {name: value for name, value in _ATTRIBUTE.findall(tag_body)}


def is_countable_sleep_value(value: str) -> bool:
    """True for values that denote time asleep or in bed.

    Matches category names ("...Asleep...", "...InBed", anything with
    "SleepAnalysis") and the bare numeric codes 1-5 that some exporters
    write instead.
    """
    value = value.strip()
    return (
        "Asleep" in value
        or "InBed" in value
        or "SleepAnalysis" in value
        or bool(_NUMERIC_SLEEP_CODE.match(value))
    )


class SleepXMLScanner:
    """Incremental `<Record>` scanner that aggregates sleep per calendar date.

    Usage:
        scanner = SleepXMLScanner(tz=None)
        for chunk in reader:
            scanner.feed(chunk)
        entries = scanner.close()
    """

    def __init__(
        self,
        tz: Optional[tzinfo] = None,
        max_pending: int = 64 * 1024,
        source: str = "apple_health",
    ):
        self.tz = tz
        self.max_pending = max_pending
        self.aggregator = DailyAggregator(source=source)
        self.buffer = ""
        self.bytes_processed = 0
        self.records_seen = 0
        self.sleep_records = 0
        self.dropped_buffers = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed = False

    def feed(self, data: bytes) -> None:
        if self._closed:
            raise ValueError("scanner is closed")
        self.bytes_processed += len(data)
        self.buffer += self._decoder.decode(data)
        self._scan()

    def close(self) -> List[DailySleepEntry]:
        """Flush the decoder, scan what is left and return one entry per night."""
        if not self._closed:
            self.buffer += self._decoder.decode(b"", final=True)
            self._scan()
            self._closed = True
            self.buffer = ""
            logger.info(
                "XML scan done: %d bytes, %d records, %d sleep records, %d nights",
                self.bytes_processed, self.records_seen, self.sleep_records, len(self.aggregator),
            )
        return self.aggregator.entries()

    def _scan(self) -> None:
        buf = self.buffer
        pos = 0

        while True:
            start = buf.find(RECORD_START, pos)
            if start == -1:
                # Keep just enough to complete a marker split across chunks.
                keep = len(RECORD_START) - 1
                pos = max(pos, len(buf) - keep)
                break

            found = self._next_record(buf, start)
            if found is None:
                pos = start
                break
            end, open_tag = found
            if open_tag is None:
                # "<RecordXyz" or similar; not a record.
                pos = end
                continue

            self._handle_record(open_tag.group(1))
            pos = end

        tail = buf[pos:]
        if len(tail) > self.max_pending:
            self.dropped_buffers += 1
            logger.warning(
                "Dropping %d buffered characters with no record end in sight", len(tail)
            )
            tail = ""
        self.buffer = tail

    def _next_record(self, buf: str, start: int) -> Optional[Tuple[int, Optional[re.Match]]]:
        """Locate the record whose marker sits at `start`.

        Returns (index just past the record, opening tag match), None when
        the record is not complete yet, or (index past the marker, None)
        when the marker does not open a `<Record` element at all.
        """
        after = start + len(RECORD_START)
        if after >= len(buf):
            return None
        if buf[after] not in " \t\r\n/>":
            return after, None

        match = _OPEN_TAG.match(buf, start)
        if match is None:
            return None
        if match.group(1).rstrip().endswith("/"):
            return match.end(), match

        close = buf.find(RECORD_CLOSE, match.end())
        if close == -1:
            return None
        return close + len(RECORD_CLOSE), match

    def _handle_record(self, tag_body: str) -> None:
        self.records_seen += 1
        attrs = parse_attributes(tag_body)
        if attrs.get("type") != SLEEP_ANALYSIS_TYPE:
            return
        if not is_countable_sleep_value(attrs.get("value", "")):
            return

        start_dt = parse_timestamp(attrs.get("startDate", ""), self.tz)
        end_dt = parse_timestamp(attrs.get("endDate", ""), self.tz)
        if start_dt is None or end_dt is None:
            return

        self.sleep_records += 1
        self.aggregator.add(RawInterval(
            calendar_date=start_dt.date(),
            start=start_dt,
            end=end_dt,
            provenance="xml",
        ))


def scan_sleep_xml(
    chunks: Iterable[bytes],
    tz: Optional[tzinfo] = None,
    max_pending: int = 64 * 1024,
    source: str = "apple_health",
) -> List[DailySleepEntry]:
    """Run a `SleepXMLScanner` over an iterable of byte chunks."""
    scanner = SleepXMLScanner(tz=tz, max_pending=max_pending, source=source)
    for chunk in chunks:
        scanner.feed(chunk)
    return scanner.close()
