"""
Create the pricing plans table.

Plans are effective-dated: a price revision is a new row sharing the
plan_guid of the previous one with a later valid_from.
"""

import sqlite3

from resource_billing.core.catalog import Migration


def migrate(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS pricing_plans (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            valid_from TEXT NOT NULL,
            plan_guid TEXT NOT NULL,
            UNIQUE (plan_guid, valid_from)
        )
    """)


MIGRATION = Migration(
    name="003_create_pricing_plans",
    description="Create pricing plans table",
    migrate=migrate,
)
