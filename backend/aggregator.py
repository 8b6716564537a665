"""
Envelope aggregation of sleep intervals per calendar date.

A health export can hold many fragments for one night (in-bed, asleep,
core/deep/REM stages, naps). They collapse to a single
[earliest start, latest end] envelope per date, and the night's duration
comes from that envelope, never from summing fragments.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Tuple

from dates import clock_of, round_minutes
from models import DailySleepEntry, RawInterval

logger = logging.getLogger(__name__)


class DailyAggregator:
    """Accumulates `RawInterval`s and emits one `DailySleepEntry` per date."""

    def __init__(self, source: str = "apple_health"):
        self.source = source
        self._envelopes: Dict[date, Tuple[datetime, datetime]] = {}
        self.skipped = 0

    def __len__(self) -> int:
        return len(self._envelopes)

    def add(self, interval: RawInterval) -> None:
        if interval.end < interval.start:
            self.skipped += 1
            return

        current = self._envelopes.get(interval.calendar_date)
        if current is None:
            self._envelopes[interval.calendar_date] = (interval.start, interval.end)
            return

        start, end = current
        self._envelopes[interval.calendar_date] = (
            min(start, interval.start),
            max(end, interval.end),
        )

    def entries(self) -> List[DailySleepEntry]:
        """Return the aggregated nights ordered by date."""
        out: List[DailySleepEntry] = []
        for day in sorted(self._envelopes):
            start, end = self._envelopes[day]
            out.append(DailySleepEntry(
                date=day.isoformat(),
                bedtime=clock_of(start),
                wake_time=clock_of(end),
                duration_minutes=round_minutes(end - start),
                source=self.source,
            ))
        if self.skipped:
            logger.debug("Skipped %d intervals ending before they start", self.skipped)
        return out
