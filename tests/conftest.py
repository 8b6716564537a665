from __future__ import annotations

from typing import Dict, List, Tuple

import pytest

from models import DailySleepEntry
from service_import import ImportService


SLEEP_XML = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE HealthData [
<!ELEMENT HealthData (Record*)>
<!ELEMENT Record (MetadataEntry*)>
<!ATTLIST Record type CDATA #REQUIRED>
]>
<HealthData locale="en_US">
 <Record type="HKCategoryTypeIdentifierSleepAnalysis" sourceName="Watch" startDate="2024-01-01 22:00:00 +0100" endDate="2024-01-01 23:30:00 +0100" value="HKCategoryValueSleepAnalysisInBed"/>
 <Record type="HKQuantityTypeIdentifierHeartRate" sourceName="Watch" unit="count/min" startDate="2024-01-01 21:00:00 +0100" endDate="2024-01-01 21:01:00 +0100" value="58"/>
 <Record type="HKCategoryTypeIdentifierSleepAnalysis" sourceName="Watch" startDate="2024-01-01 23:00:00 +0100" endDate="2024-01-02 06:00:00 +0100" value="HKCategoryValueSleepAnalysisAsleepCore">
  <MetadataEntry key="HKTimeZone" value="Europe/Berlin"/>
 </Record>
 <Record value="HKCategoryValueSleepAnalysisAsleepDeep" endDate="2024-01-03 05:45:00 +0100" startDate="2024-01-02 23:15:00 +0100" sourceName="Wätch ☾ Ünïcode" type="HKCategoryTypeIdentifierSleepAnalysis"/>
</HealthData>
"""


class FakeSleepLogRepo:
    """In-memory stand-in for `SleepLogRepo` keyed like the real table."""

    def __init__(self, fail_dates=()):
        self.rows: Dict[Tuple[str, str], dict] = {}
        self.users = set()
        self.batches: List[List[str]] = []
        self.fail_dates = set(fail_dates)

    def ensure_user(self, user_id: str) -> None:
        self.users.add(user_id)

    def upsert_sleep_entries(self, user_id: str, entries: List[DailySleepEntry]) -> int:
        self.batches.append([e.date for e in entries])
        if any(e.date in self.fail_dates for e in entries):
            raise RuntimeError("payload rejected")
        for e in entries:
            self.rows[(user_id, e.date)] = {
                "bedtime_actual": e.bedtime or None,
                "wake_actual": e.wake_time or None,
                "sleep_duration_minutes": e.duration_minutes or None,
                "imported_from": e.source,
            }
        return len(entries)

    def fetch_sleep_logs(self, user_id: str, limit: int) -> List[dict]:
        out = []
        for i, ((uid, day), row) in enumerate(sorted(self.rows.items(), reverse=True)):
            if uid != user_id:
                continue
            bedtime = row["bedtime_actual"]
            out.append({
                "id": str(i + 1),
                "user_id": uid,
                "date": day,
                "on_schedule": bool(bedtime) and bedtime <= "23:30",
                **row,
            })
        return out[:limit]

    def ping(self) -> None:
        pass


@pytest.fixture
def repo() -> FakeSleepLogRepo:
    return FakeSleepLogRepo()


@pytest.fixture
def svc(repo: FakeSleepLogRepo) -> ImportService:
    return ImportService(repo)


@pytest.fixture
def sleep_xml() -> bytes:
    return SLEEP_XML.encode("utf-8")
