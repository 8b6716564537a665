"""
Pydantic models used across the backend.

Parsers produce `RawInterval` / `DailySleepEntry`, the import service
returns `ImportResult`, and routes expose `ImportStatus` and `SleepLog`.

Guidelines:
- Keep models minimal and stable. DB-specific fields (like `id`) only
    appear on read models (`SleepLog`), never on import shapes.
"""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import date, datetime


Provenance = Literal["csv", "json", "xml"]


class RawInterval(BaseModel):
        """One sleep interval read from an export, before aggregation.

        Fields:
        - `calendar_date`: local date of `start`; the aggregation key.
        - `start` / `end`: timezone-aware instants.
        - `provenance`: which parser produced the interval.
        """

        calendar_date: date
        start: datetime
        end: datetime
        provenance: Provenance


class DailySleepEntry(BaseModel):
        """One night of sleep, the unit the import writes per (user, date)."""

        date: str
        bedtime: str = ""
        wake_time: str = ""
        duration_minutes: int = 0
        source: str = "apple_health"


class ImportResult(BaseModel):
        """Outcome of one import. `success` is true iff `imported > 0`."""

        success: bool
        imported: int = 0
        errors: List[str] = Field(default_factory=list)


class ImportStatus(BaseModel):
        """Tracker state for a user's import, polled by the upload page."""

        importing: bool = False
        progress: int = 0
        last_result: Optional[ImportResult] = None


class SleepLog(BaseModel):
        """Read shape of a persisted `sleep_logs` row."""

        id: str
        user_id: str
        date: str
        bedtime_actual: Optional[str] = None
        wake_actual: Optional[str] = None
        sleep_duration_minutes: Optional[int] = None
        on_schedule: Optional[bool] = None
        imported_from: Optional[str] = None
