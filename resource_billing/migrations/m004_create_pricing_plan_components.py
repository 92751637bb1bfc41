"""Create the ordered, per-plan pricing components."""

import sqlite3

from resource_billing.core.catalog import Migration


def migrate(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS pricing_plan_components (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            pricing_plan_id INTEGER NOT NULL
                REFERENCES pricing_plans (id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            formula TEXT NOT NULL,
            vat_code TEXT NOT NULL,
            currency_code TEXT NOT NULL,
            UNIQUE (pricing_plan_id, position)
        )
    """)


MIGRATION = Migration(
    name="004_create_pricing_plan_components",
    description="Create pricing plan components table",
    migrate=migrate,
)
