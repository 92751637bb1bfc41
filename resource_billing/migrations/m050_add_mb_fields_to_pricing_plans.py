"""
Add memory and storage footprint columns to pricing plans.

Existing plans get 0 for both, meaning the plan has no metered footprint.
The columns are only added when missing, so running the body again never
resets values written after the first run.
"""

import sqlite3

from resource_billing.core.catalog import Migration
from . import add_column_if_missing


def migrate(conn: sqlite3.Connection) -> None:
    add_column_if_missing(conn, "pricing_plans", "memory_in_mb", "INTEGER NOT NULL DEFAULT 0")
    add_column_if_missing(conn, "pricing_plans", "storage_in_mb", "INTEGER NOT NULL DEFAULT 0")


MIGRATION = Migration(
    name="050_add_mb_fields_to_pricing_plans",
    description="Add memory_in_mb and storage_in_mb to pricing plans",
    migrate=migrate,
)
