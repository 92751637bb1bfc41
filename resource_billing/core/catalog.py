"""
Migration catalog.

Discovers the migration definitions shipped in a migrations package and
exposes them in their total order. A migration module is any module of the
package named ``m<digits>_...`` that defines a module-level ``MIGRATION``.
Order is defined purely by comparing migration names as strings; the order
in which the filesystem lists the modules is never used.
"""

import importlib
import logging
import pkgutil
import re
import sqlite3
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .errors import DiscoveryError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_PACKAGE = "resource_billing.migrations"

MIGRATION_NAME_PATTERN = re.compile(r"^\d+_[a-z0-9_]+$")
MIGRATION_MODULE_PATTERN = re.compile(r"^m\d+_")


@dataclass(frozen=True)
class Migration:
    """A named unit of schema or data transformation.

    migrate receives the connection with a transaction already open and
    must not commit, roll back or use executescript (which commits).
    """
    name: str
    description: str
    migrate: Callable[[sqlite3.Connection], None]


class MigrationCatalog:
    """Immutable, name-ordered collection of migrations."""

    def __init__(self, migrations: List[Migration]):
        by_name: Dict[str, Migration] = {}
        for migration in migrations:
            if not MIGRATION_NAME_PATTERN.match(migration.name):
                raise DiscoveryError(
                    f"Migration name {migration.name!r} must start with a numeric prefix"
                )
            if migration.name in by_name:
                raise DiscoveryError(f"Duplicate migration name: {migration.name}")
            by_name[migration.name] = migration
        self._migrations = by_name
        self._sequence = sorted(by_name)

    @classmethod
    def discover(cls, package: str = DEFAULT_MIGRATIONS_PACKAGE) -> "MigrationCatalog":
        """Import every migration module in a package and build a catalog.

        Args:
            package: Dotted name of the package holding migration modules

        Returns:
            Catalog of all discovered migrations

        Raises:
            DiscoveryError: If the package or any migration module cannot be
                loaded, or a module defines no valid MIGRATION
        """
        try:
            pkg = importlib.import_module(package)
        except ImportError as e:
            raise DiscoveryError(f"Unable to import migrations package {package}: {e}") from e

        if not hasattr(pkg, "__path__"):
            raise DiscoveryError(f"{package} is not a package")

        migrations = []
        for module_info in pkgutil.iter_modules(pkg.__path__):
            if not MIGRATION_MODULE_PATTERN.match(module_info.name):
                continue
            module_name = f"{package}.{module_info.name}"
            try:
                module = importlib.import_module(module_name)
            except Exception as e:
                raise DiscoveryError(f"Unable to load migration module {module_name}: {e}") from e

            migration = getattr(module, "MIGRATION", None)
            if not isinstance(migration, Migration):
                raise DiscoveryError(f"Module {module_name} does not define a MIGRATION")
            migrations.append(migration)

        catalog = cls(migrations)
        logger.debug("Discovered %d migrations in %s", len(catalog), package)
        return catalog

    def __len__(self) -> int:
        return len(self._sequence)

    def __contains__(self, name: str) -> bool:
        return name in self._migrations

    def get(self, name: str) -> Migration:
        """Look up a migration by name.

        Raises:
            NotFoundError: If the name is not in the catalog
        """
        try:
            return self._migrations[name]
        except KeyError:
            raise NotFoundError(name) from None

    def sequence(self) -> List[str]:
        """Every migration name in ascending order."""
        return list(self._sequence)

    def sequence_before(self, boundary: str) -> List[str]:
        """Migration names strictly before boundary.

        Used to reproduce the schema as it was just before a given
        migration was released.

        Raises:
            NotFoundError: If boundary is not in the catalog
        """
        if boundary not in self._migrations:
            raise NotFoundError(boundary)
        return [name for name in self._sequence if name < boundary]

    def sequence_through(self, boundary: str) -> List[str]:
        """Migration names up to and including boundary.

        Raises:
            NotFoundError: If boundary is not in the catalog
        """
        return self.sequence_before(boundary) + [boundary]


# Global catalog instance
_default_catalog: Optional[MigrationCatalog] = None


def get_catalog() -> MigrationCatalog:
    """Get the catalog of the built-in migrations, discovering it once."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = MigrationCatalog.discover()
    return _default_catalog


def migration_sequence() -> List[str]:
    """Every built-in migration name in ascending order."""
    return get_catalog().sequence()


def migration_sequence_before(boundary: str) -> List[str]:
    """Built-in migration names strictly before boundary."""
    return get_catalog().sequence_before(boundary)
