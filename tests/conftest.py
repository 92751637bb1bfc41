"""
Shared fixtures for resource billing tests.

Every test gets its own SQLite file under pytest's tmp_path.
"""

import json

import pytest

from resource_billing.core.engine import SchemaClient

APP_GUID = "000007d7-8a78-4cc0-9be3-b41f89460ae8"
SERVICE_INSTANCE_GUID = "eb3eb3ae-0fb6-475e-af93-975e80f6361a"
PLAN_GUID = "FB0E63F6-E97A-446B-A200-323FC9B562E9"


def app_payload(state, app_guid=APP_GUID, memory=1024, instances=1, **extra):
    """JSON payload shaped like an upstream app usage event."""
    payload = {
        "state": state,
        "app_guid": app_guid,
        "app_name": "app1",
        "org_guid": "org_guid",
        "space_guid": "space_guid",
        "space_name": "space1",
        "process_type": "web",
        "task_guid": None,
        "instance_count": instances,
        "memory_in_mb_per_instance": memory,
    }
    payload.update(extra)
    return json.dumps(payload)


def service_payload(state, instance_guid=SERVICE_INSTANCE_GUID, plan_guid=PLAN_GUID, **extra):
    """JSON payload shaped like an upstream service usage event."""
    payload = {
        "state": state,
        "org_guid": "org_guid",
        "space_guid": "space_guid",
        "service_label": "postgres",
        "service_plan_guid": plan_guid,
        "service_plan_name": "Free",
        "service_instance_guid": instance_guid,
        "service_instance_name": "ja-rails-postgres",
        "service_instance_type": "managed_service_instance",
    }
    payload.update(extra)
    return json.dumps(payload)


@pytest.fixture
def db_path(tmp_path):
    """Path to an empty database file."""
    return str(tmp_path / "billing.db")


@pytest.fixture
def client(db_path):
    """Schema client on an empty database using the built-in migrations."""
    client = SchemaClient(db_path)
    yield client
    client.close()


@pytest.fixture
def insert_event(client):
    """Append a raw event to app_usage_events or service_usage_events."""
    def _insert(table, created_at, guid, raw_message):
        with client.conn:
            client.conn.execute(
                f"INSERT INTO {table} (created_at, guid, raw_message) VALUES (?, ?, ?)",
                (created_at, guid, raw_message)
            )
    return _insert


@pytest.fixture
def schema_snapshot(client):
    """Return a callable listing every schema object of the client database."""
    def _snapshot():
        return client.conn.execute(
            "SELECT type, name, sql FROM sqlite_master ORDER BY type, name"
        ).fetchall()
    return _snapshot
