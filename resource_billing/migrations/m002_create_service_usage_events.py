"""Create the append-only table of raw service instance usage events."""

import sqlite3

from resource_billing.core.catalog import Migration


def migrate(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS service_usage_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            guid TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            raw_message TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS service_usage_events_created_at_idx
        ON service_usage_events (created_at)
    """)


MIGRATION = Migration(
    name="002_create_service_usage_events",
    description="Create service usage events table",
    migrate=migrate,
)
