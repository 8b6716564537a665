"""
Database connection helper.

Every repository call goes through `get_conn()`, which opens a fresh
psycopg connection per call:

    from db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")

Each import batch opens its own connection, so a failed batch rolls back
on context exit without touching the batches that already committed.
Connections are tagged with `application_name` so long imports show up
as such in `pg_stat_activity`.
"""

import psycopg
from settings import settings


def get_conn():
    """Return a new psycopg connection using `settings.db_url`.

    `DB_CONNECT_TIMEOUT` bounds how long an upload waits for an
    unreachable database before the batch is reported as failed.
    """

    return psycopg.connect(
        settings.db_url,
        connect_timeout=settings.db_connect_timeout,
        application_name=settings.db_application_name,
    )
