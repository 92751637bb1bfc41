"""Create the append-only table of raw app (compute workload) usage events."""

import sqlite3

from resource_billing.core.catalog import Migration


def migrate(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS app_usage_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            guid TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            raw_message TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS app_usage_events_created_at_idx
        ON app_usage_events (created_at)
    """)


MIGRATION = Migration(
    name="001_create_app_usage_events",
    description="Create app usage events table",
    migrate=migrate,
)
