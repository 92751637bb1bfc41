"""
Exceptions for resource billing.

Every error raised by the migration catalog, ledger and engine inherits
from ResourceBillingError so callers (deployment tooling, the CLI) can
halt on any of them with a single except clause.
"""

from typing import Optional


class ResourceBillingError(Exception):
    """Base exception for all resource billing errors."""

    pass


class DiscoveryError(ResourceBillingError):
    """
    Raised when the migration catalog cannot be enumerated.

    Covers a missing migrations package, a migration module that fails to
    import, a module without a MIGRATION definition, and malformed or
    duplicate migration names. Raised before any database interaction.
    """

    pass


class NotFoundError(ResourceBillingError):
    """Raised when a migration name is not present in the catalog."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Migration {name!r} was not found in the catalog")


class LedgerError(ResourceBillingError):
    """Raised when the schema ledger cannot be read or written."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class MigrationError(ResourceBillingError):
    """
    Raised when the body of a specific migration fails.

    The failed migration has been rolled back and is not recorded in the
    ledger. Migrations applied earlier in the same batch stay committed.

    Attributes:
        migration_name: Name of the migration that failed
        cause: The underlying exception (also available as __cause__)
    """

    def __init__(self, migration_name: str, cause: BaseException) -> None:
        self.migration_name = migration_name
        self.cause = cause
        super().__init__(f"Migration {migration_name} failed: {cause}")
