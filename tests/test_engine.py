"""
Unit tests for the migration engine.

Tests idempotency, ordering, prefix application and fail-fast rollback.
"""

import pytest

from resource_billing.core.catalog import Migration, MigrationCatalog, migration_sequence
from resource_billing.core.engine import SchemaClient
from resource_billing.core.errors import LedgerError, MigrationError, NotFoundError


def _create_table(table):
    def migrate(conn):
        conn.execute(f"CREATE TABLE {table} (id INTEGER PRIMARY KEY)")
    return migrate


def _fail_after_creating(table):
    def migrate(conn):
        conn.execute(f"CREATE TABLE {table} (id INTEGER PRIMARY KEY)")
        raise RuntimeError("statement failed")
    return migrate


def _tables(client):
    rows = client.conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
    ).fetchall()
    return [row[0] for row in rows]


@pytest.fixture
def test_client(db_path):
    """Client whose catalog holds three small table-creating migrations."""
    catalog = MigrationCatalog([
        Migration("001_create_alpha", "Create alpha", _create_table("alpha")),
        Migration("002_create_beta", "Create beta", _create_table("beta")),
        Migration("003_create_gamma", "Create gamma", _create_table("gamma")),
    ])
    client = SchemaClient(db_path, catalog=catalog)
    yield client
    client.close()


class TestApplyMigrations:
    """Test applying migrations and the ledger they leave behind."""

    def test_applies_in_given_order(self, test_client):
        """Every pending migration runs and is recorded."""
        applied = test_client.apply_migrations(test_client.sequence())

        assert applied == ["001_create_alpha", "002_create_beta", "003_create_gamma"]
        assert {"alpha", "beta", "gamma"} <= set(_tables(test_client))
        assert [r.name for r in test_client.applied_migrations()] == applied

    def test_reapplying_is_a_no_op(self, test_client):
        """Names already in the ledger are skipped and still succeed."""
        test_client.apply_migrations(test_client.sequence())

        assert test_client.apply_migrations(test_client.sequence()) == []
        assert test_client.apply_migrations(["002_create_beta"]) == []

    def test_superset_applies_only_pending(self, test_client):
        """A superset of applied names only runs the new ones."""
        test_client.apply_migrations(["001_create_alpha"])

        applied = test_client.apply_migrations(test_client.sequence())

        assert applied == ["002_create_beta", "003_create_gamma"]

    def test_does_not_resort_names(self, db_path):
        """The caller's order is respected."""
        calls = []
        catalog = MigrationCatalog([
            Migration("001_first", "", lambda conn: calls.append("001_first")),
            Migration("002_second", "", lambda conn: calls.append("002_second")),
        ])
        with SchemaClient(db_path, catalog=catalog) as client:
            client.apply_migrations(["002_second", "001_first"])

        assert calls == ["002_second", "001_first"]

    def test_unknown_name_touches_nothing(self, test_client):
        """Unknown names fail before the database is touched."""
        with pytest.raises(NotFoundError):
            test_client.apply_migrations(["001_create_alpha", "999_missing"])

        assert _tables(test_client) == []

    def test_empty_list(self, test_client):
        """Applying nothing only bootstraps the ledger."""
        assert test_client.apply_migrations([]) == []
        assert _tables(test_client) == ["schema_migrations"]

    def test_ledger_survives_new_connections(self, test_client, db_path):
        """Applied state is persisted, not held in the process."""
        test_client.apply_migrations(["001_create_alpha"])

        with SchemaClient(db_path, catalog=test_client.catalog) as other:
            assert other.apply_migrations(["001_create_alpha", "002_create_beta"]) == [
                "002_create_beta"
            ]


class TestMigrationFailure:
    """Test fail-fast behavior and rollback."""

    @pytest.fixture
    def failing_client(self, db_path):
        catalog = MigrationCatalog([
            Migration("001_create_alpha", "", _create_table("alpha")),
            Migration("002_create_beta", "", _fail_after_creating("beta")),
            Migration("003_create_gamma", "", _create_table("gamma")),
        ])
        client = SchemaClient(db_path, catalog=catalog)
        yield client
        client.close()

    def test_failure_names_migration_and_wraps_cause(self, failing_client):
        """The error identifies the failed migration and keeps the cause."""
        with pytest.raises(MigrationError) as exc_info:
            failing_client.apply_migrations(failing_client.sequence())

        assert exc_info.value.migration_name == "002_create_beta"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "002_create_beta" in str(exc_info.value)

    def test_failed_migration_is_rolled_back(self, failing_client):
        """Effects of the failed body disappear; earlier migrations stay."""
        with pytest.raises(MigrationError):
            failing_client.apply_migrations(failing_client.sequence())

        tables = _tables(failing_client)
        assert "alpha" in tables
        assert "beta" not in tables
        assert [r.name for r in failing_client.applied_migrations()] == ["001_create_alpha"]

    def test_later_migrations_not_attempted(self, failing_client):
        """Application stops at the first failure."""
        with pytest.raises(MigrationError):
            failing_client.apply_migrations(failing_client.sequence())

        assert "gamma" not in _tables(failing_client)

    def test_ledger_write_failure_rolls_back_body(self, test_client):
        """A ledger that cannot be written aborts the migration."""
        test_client.conn.execute("CREATE TABLE schema_migrations (name TEXT PRIMARY KEY)")
        test_client.conn.commit()

        with pytest.raises(LedgerError):
            test_client.apply_migrations(["001_create_alpha"])

        assert "alpha" not in _tables(test_client)

    def test_open_transaction_is_rejected(self, test_client):
        """Uncommitted work on the connection is never folded into a migration."""
        test_client.init_schema()
        test_client.conn.execute("CREATE TABLE scratch (id INTEGER)")
        test_client.conn.execute("INSERT INTO scratch (id) VALUES (1)")

        with pytest.raises(LedgerError, match="open transaction"):
            test_client.apply_migrations(["001_create_alpha"])
        test_client.conn.rollback()


class TestBuiltInSequence:
    """Test properties of the shipped migration sequence."""

    def test_full_sequence_applies_on_empty_database(self, client):
        """Every shipped migration applies cleanly from scratch."""
        assert client.migrate() == migration_sequence()
        assert client.migrate() == []

    def test_migrate_up_to(self, client):
        """migrate(up_to) stops after the named migration."""
        applied = client.migrate(up_to="050_add_mb_fields_to_pricing_plans")

        assert applied[-1] == "050_add_mb_fields_to_pricing_plans"
        assert "051_create_resource_durations" not in applied

    def test_migrate_up_to_unknown(self, client):
        """An unknown target is reported."""
        with pytest.raises(NotFoundError):
            client.migrate(up_to="999_missing")

    @pytest.mark.parametrize("boundary", migration_sequence())
    def test_prefix_then_boundary_matches_direct_application(self, boundary, tmp_path):
        """Applying the prefix then the boundary equals applying through it."""
        with SchemaClient(str(tmp_path / "stepwise.db")) as stepwise:
            stepwise.apply_migrations(stepwise.sequence_before(boundary))
            stepwise.apply_migrations([boundary])
            stepwise_schema = stepwise.conn.execute(
                "SELECT type, name, sql FROM sqlite_master ORDER BY type, name"
            ).fetchall()
            stepwise_ledger = [r.name for r in stepwise.applied_migrations()]

        with SchemaClient(str(tmp_path / "direct.db")) as direct:
            direct.migrate(up_to=boundary)
            direct_schema = direct.conn.execute(
                "SELECT type, name, sql FROM sqlite_master ORDER BY type, name"
            ).fetchall()
            direct_ledger = [r.name for r in direct.applied_migrations()]

        assert stepwise_schema == direct_schema
        assert stepwise_ledger == direct_ledger


class TestConnection:
    """Test opening the client database."""

    def test_unopenable_database_raises_ledger_error(self, tmp_path):
        """A path that cannot be opened is reported as a library error."""
        with pytest.raises(LedgerError, match="Unable to open database"):
            SchemaClient(str(tmp_path / "missing" / "dir" / "billing.db"))

    def test_applied_migrations_does_not_create_ledger(self, client):
        """Reading an unmigrated database leaves its schema untouched."""
        assert client.applied_migrations() == []
        assert not client.ledger.exists()

    def test_read_only_client_lists_applied(self, client, db_path):
        client.migrate(up_to="050_add_mb_fields_to_pricing_plans")

        with SchemaClient(db_path, read_only=True) as reader:
            applied = [r.name for r in reader.applied_migrations()]

        assert applied[-1] == "050_add_mb_fields_to_pricing_plans"

    def test_read_only_client_does_not_create_file(self, tmp_path):
        path = tmp_path / "absent.db"

        with pytest.raises(LedgerError):
            SchemaClient(str(path), read_only=True)

        assert not path.exists()
