"""Create the effective-dated VAT rates table."""

import sqlite3

from resource_billing.core.catalog import Migration


def migrate(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS vat_rates (
            code TEXT NOT NULL,
            valid_from TEXT NOT NULL,
            rate REAL NOT NULL CHECK (rate >= 0),
            PRIMARY KEY (code, valid_from)
        )
    """)


MIGRATION = Migration(
    name="005_create_vat_rates",
    description="Create VAT rates table",
    migrate=migrate,
)
