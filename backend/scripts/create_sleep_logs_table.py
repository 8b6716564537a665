import os
import sys

import psycopg

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from settings import settings

# on_schedule is derived by the database; imports never write it.
DDL = '''
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS sleep_logs (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users (user_id),
    date DATE NOT NULL,
    bedtime_target TIME NOT NULL DEFAULT '23:00',
    bedtime_actual TIME,
    wake_actual TIME,
    sleep_duration_minutes INTEGER,
    quality_score INTEGER,
    on_schedule BOOLEAN GENERATED ALWAYS AS (
        COALESCE(bedtime_actual <= TIME '23:30', FALSE)
    ) STORED,
    imported_from TEXT,
    notes TEXT,
    UNIQUE (user_id, date)
);

CREATE INDEX IF NOT EXISTS idx_sleep_logs_user_date ON sleep_logs (user_id, date DESC);
'''

print('Connecting to', settings.db_url)
with psycopg.connect(settings.db_url, connect_timeout=5) as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
    conn.commit()
print('DDL applied')
