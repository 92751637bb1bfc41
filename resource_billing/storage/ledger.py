"""
Schema ledger persistence.

Records which migrations have been applied. The ledger lives in the same
database the migrations act upon and every operation runs on the caller's
connection, so a ledger write commits or rolls back together with the
migration body that precedes it.
"""

import logging
import sqlite3
from datetime import datetime
from typing import List

from resource_billing.core.errors import LedgerError
from .models import MigrationRecord

logger = logging.getLogger(__name__)

LEDGER_TABLE = "schema_migrations"


class SchemaLedger:
    """Read and write access to the schema_migrations table.

    The ledger is monotonic: entries are only ever added, never removed or
    reordered.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def init_schema(self) -> None:
        """Create the ledger table if it doesn't exist.

        Safe to call on a database that already has the table.

        Raises:
            LedgerError: If the table cannot be created
        """
        try:
            self.conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
                    name TEXT PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """)
            if not self.conn.in_transaction:
                self.conn.commit()
        except sqlite3.Error as e:
            raise LedgerError("Unable to initialise the schema ledger", e) from e

    def exists(self) -> bool:
        """Check whether the ledger table has been created.

        Raises:
            LedgerError: If the schema cannot be inspected
        """
        try:
            cursor = self.conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (LEDGER_TABLE,)
            )
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise LedgerError("Unable to inspect the database schema", e) from e

    def is_applied(self, name: str) -> bool:
        """Check whether a migration has already been recorded.

        Raises:
            LedgerError: If the ledger cannot be read
        """
        try:
            cursor = self.conn.execute(
                f"SELECT 1 FROM {LEDGER_TABLE} WHERE name = ?", (name,)
            )
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise LedgerError(f"Unable to read ledger entry for {name}", e) from e

    def record(self, name: str, applied_at: datetime) -> None:
        """Record a migration as applied.

        Does not commit; the caller owns the enclosing transaction.

        Raises:
            LedgerError: If the entry cannot be written
        """
        try:
            self.conn.execute(
                f"INSERT INTO {LEDGER_TABLE} (name, applied_at) VALUES (?, ?)",
                (name, applied_at.isoformat()),
            )
        except sqlite3.Error as e:
            raise LedgerError(f"Unable to record migration {name}", e) from e
        logger.debug("Recorded migration %s in ledger", name)

    def applied_migrations(self) -> List[MigrationRecord]:
        """Return every ledger entry ordered by migration name.

        Raises:
            LedgerError: If the ledger cannot be read
        """
        try:
            cursor = self.conn.execute(
                f"SELECT name, applied_at FROM {LEDGER_TABLE} ORDER BY name"
            )
            return [
                MigrationRecord(name=row[0], applied_at=datetime.fromisoformat(row[1]))
                for row in cursor.fetchall()
            ]
        except sqlite3.Error as e:
            raise LedgerError("Unable to read the schema ledger", e) from e
