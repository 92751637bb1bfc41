"""
Built-in migrations for the resource billing schema.

Each ``mNNN_*`` module defines one released migration as a module-level
``MIGRATION``. Released migrations are never renumbered or edited; a change
to existing data ships as a new migration.
"""

import sqlite3
from typing import List


def table_columns(conn: sqlite3.Connection, table: str) -> List[str]:
    """Names of the columns currently defined on a table."""
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return [row[1] for row in cursor.fetchall()]


def add_column_if_missing(
    conn: sqlite3.Connection,
    table: str,
    column: str,
    definition: str
) -> bool:
    """Add a column unless the table already has it.

    Existing rows receive the column default as part of the ALTER. When the
    column is already present nothing is executed, so values written since
    the first run are left untouched.

    Returns:
        True if the column was added
    """
    if column in table_columns(conn, table):
        return False
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    return True
