"""
Migration engine.

Applies migrations to a SQLite database one at a time. Each migration body
and its ledger entry share a single transaction, so a failure leaves the
database exactly as it was before that migration started.

Callers must serialise concurrent migrators themselves; BEGIN IMMEDIATE
only makes a second writer wait (up to the connection timeout) rather
than interleave.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from resource_billing.storage.db import DEFAULT_DB_PATH, get_connection
from resource_billing.storage.ledger import SchemaLedger
from resource_billing.storage.models import MigrationRecord
from .catalog import MigrationCatalog, get_catalog
from .errors import LedgerError, MigrationError

logger = logging.getLogger(__name__)


class SchemaClient:
    """Owns a database connection and evolves its schema.

    Usage:
        with SchemaClient("billing.db") as client:
            client.init_schema()
            client.apply_migrations(client.sequence())
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        catalog: Optional[MigrationCatalog] = None,
        timeout: float = 5.0,
        read_only: bool = False
    ):
        """Open a connection to the database.

        Args:
            db_path: Path to SQLite database file
            catalog: Migration catalog (defaults to the built-in migrations)
            timeout: Seconds to wait for a lock held by another connection
            read_only: Open an existing database without write access

        Raises:
            LedgerError: If the database cannot be opened
        """
        self.db_path = db_path
        self.catalog = catalog if catalog is not None else get_catalog()
        try:
            self.conn = get_connection(db_path, timeout=timeout, read_only=read_only)
        except sqlite3.Error as e:
            raise LedgerError(f"Unable to open database {db_path}", e) from e
        self.ledger = SchemaLedger(self.conn)

    def __enter__(self) -> "SchemaClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def init_schema(self) -> None:
        """Bootstrap the schema ledger. Idempotent."""
        self.ledger.init_schema()

    def sequence(self) -> List[str]:
        """Every migration name known to the catalog, in order."""
        return self.catalog.sequence()

    def sequence_before(self, boundary: str) -> List[str]:
        """Migration names strictly before boundary."""
        return self.catalog.sequence_before(boundary)

    def applied_migrations(self) -> List[MigrationRecord]:
        """Every migration recorded in the ledger, none if it was never created."""
        if not self.ledger.exists():
            return []
        return self.ledger.applied_migrations()

    def apply_migrations(self, names: List[str]) -> List[str]:
        """Apply migrations in the given order, skipping those already applied.

        The order of names is not changed; callers pass a prefix or subset
        of the catalog sequence. Application stops at the first failure.

        Args:
            names: Migration names to apply, in order

        Returns:
            Names of the migrations applied by this call

        Raises:
            NotFoundError: If any name is unknown (nothing is applied)
            LedgerError: If the ledger cannot be read or written
            MigrationError: If a migration body fails; it is rolled back and
                no later migration is attempted
        """
        migrations = [self.catalog.get(name) for name in names]
        self.init_schema()

        applied: List[str] = []
        for migration in migrations:
            self._begin()
            try:
                if self.ledger.is_applied(migration.name):
                    self.conn.rollback()
                    logger.info("Skipping migration %s: already applied", migration.name)
                    continue

                logger.info("Applying migration %s: %s", migration.name, migration.description)
                try:
                    migration.migrate(self.conn)
                except Exception as e:
                    raise MigrationError(migration.name, e) from e

                self.ledger.record(migration.name, datetime.now(timezone.utc))
                self.conn.commit()
            except (LedgerError, MigrationError) as e:
                self._rollback()
                logger.error("%s. Applied migrations: %s", e, applied)
                raise
            except sqlite3.Error as e:
                # commit failed
                self._rollback()
                raise LedgerError(f"Unable to commit migration {migration.name}", e) from e
            applied.append(migration.name)

        return applied

    def migrate(self, up_to: Optional[str] = None) -> List[str]:
        """Apply every pending migration, or those up to and including up_to.

        Raises:
            NotFoundError: If up_to is not in the catalog
        """
        if up_to is None:
            names = self.catalog.sequence()
        else:
            names = self.catalog.sequence_through(up_to)
        return self.apply_migrations(names)

    def _begin(self) -> None:
        if self.conn.in_transaction:
            # Work left uncommitted on the shared connection would otherwise
            # be folded into the first migration's transaction.
            raise LedgerError("Connection has an open transaction; commit it before migrating")
        try:
            self.conn.execute("BEGIN IMMEDIATE TRANSACTION")
        except sqlite3.Error as e:
            raise LedgerError("Unable to start migration transaction", e) from e

    def _rollback(self) -> None:
        if self.conn.in_transaction:
            self.conn.rollback()
