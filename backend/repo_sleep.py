"""
Repository: SQL operations for `sleep_logs` and `users`.

This file contains only DB interaction code. It maps `DailySleepEntry`
models to SQL parameters and converts DB rows to plain Python dicts
suitable for JSON responses. Keep business rules out of this module.

Important notes:
- SQL strings use positional parameters for psycopg.
- `upsert_sleep_entries` relies on the `(user_id, date)` unique
  constraint: one `INSERT ... ON CONFLICT DO UPDATE` per row, no
  existence check first. Running the same batch twice leaves the table
  unchanged.
- Each call opens its own connection and commits once; if any row fails
  the connection context rolls the whole batch back.
- `on_schedule` is a generated column and is never written here.
"""

from datetime import date, time
from typing import Any, Dict, List, Optional

from db import get_conn
from models import DailySleepEntry


UPSERT_SLEEP_SQL = """
INSERT INTO sleep_logs
    (user_id, date, bedtime_actual, wake_actual, sleep_duration_minutes, imported_from)
VALUES (%s, %s, %s, %s, %s, %s)
ON CONFLICT (user_id, date) DO UPDATE
SET bedtime_actual = EXCLUDED.bedtime_actual,
    wake_actual = EXCLUDED.wake_actual,
    sleep_duration_minutes = EXCLUDED.sleep_duration_minutes,
    imported_from = EXCLUDED.imported_from
"""


def _entry_params(user_id: str, e: DailySleepEntry) -> tuple:
    # Empty clocks and zero durations are stored as NULL.
    return (
        user_id,
        date.fromisoformat(e.date),
        time.fromisoformat(e.bedtime) if e.bedtime else None,
        time.fromisoformat(e.wake_time) if e.wake_time else None,
        e.duration_minutes or None,
        e.source,
    )


def _clock(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%H:%M")


class SleepLogRepo:
    """DB access only. No business logic here.

    Responsibilities:
    - Map `DailySleepEntry` -> SQL parameters
    - Execute queries and return plain dict objects
    - Keep transaction/commit boundaries local and explicit
    """

    def ensure_user(self, user_id: str) -> None:
        """Create the `users` row for `user_id` if it does not exist yet."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO users (user_id) VALUES (%s) ON CONFLICT (user_id) DO NOTHING",
                    (user_id,),
                )
            conn.commit()

    def upsert_sleep_entries(self, user_id: str, entries: List[DailySleepEntry]) -> int:
        """Insert-or-overwrite one batch of nights for `user_id`.

        Returns the number of rows written. Raises on any DB error; nothing
        from the batch is kept in that case.
        """

        rows = [_entry_params(user_id, e) for e in entries]
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.executemany(UPSERT_SLEEP_SQL, rows)
            conn.commit()
        return len(rows)

    def fetch_sleep_logs(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        """Fetch the most recent `limit` sleep logs for `user_id`, newest first."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, user_id, date, bedtime_actual, wake_actual, "
                    "sleep_duration_minutes, on_schedule, imported_from "
                    "FROM sleep_logs WHERE user_id=%s ORDER BY date DESC LIMIT %s",
                    (user_id, limit),
                )
                out: List[Dict[str, Any]] = []
                for r in cur.fetchall():
                    out.append({
                        "id": str(r[0]),
                        "user_id": r[1],
                        "date": r[2].isoformat(),
                        "bedtime_actual": _clock(r[3]),
                        "wake_actual": _clock(r[4]),
                        "sleep_duration_minutes": r[5],
                        "on_schedule": r[6],
                        "imported_from": r[7],
                    })
                return out

    def count_imported(self, source: str) -> int:
        """Number of rows whose `imported_from` equals `source`."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM sleep_logs WHERE imported_from=%s", (source,))
                return cur.fetchone()[0]

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
