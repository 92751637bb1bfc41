"""
Database connection management.

Provides the SQLite connection shared by the ledger, the migrations and
the repository helpers. Read-only connections never create the database
file, which keeps inspection commands free of side effects.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "resource_billing.db"


def database_exists(db_path: str) -> bool:
    """Check whether db_path names an existing database file."""
    return Path(db_path).is_file()


def get_connection(
    db_path: str = DEFAULT_DB_PATH,
    timeout: float = 5.0,
    read_only: bool = False
) -> sqlite3.Connection:
    """Open a SQLite connection with foreign key enforcement.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait for a lock held by another connection
        read_only: Open an existing file in read-only mode instead of
            creating it on demand

    Raises:
        sqlite3.OperationalError: If the file cannot be opened
    """
    path = Path(db_path)
    if read_only:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", timeout=timeout, uri=True)
    else:
        conn = sqlite3.connect(str(path), timeout=timeout)
    try:
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error:
        conn.close()
        raise
    return conn
