"""Add the number of nodes a provisioned instance of a plan runs on."""

import sqlite3

from resource_billing.core.catalog import Migration
from . import add_column_if_missing


def migrate(conn: sqlite3.Connection) -> None:
    add_column_if_missing(conn, "pricing_plans", "number_of_nodes", "INTEGER NOT NULL DEFAULT 1")


MIGRATION = Migration(
    name="052_add_number_of_nodes_to_pricing_plans",
    description="Add number_of_nodes to pricing plans",
    migrate=migrate,
)
