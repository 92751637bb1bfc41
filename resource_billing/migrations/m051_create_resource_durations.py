"""
Create resource durations from the raw usage events.

Stitches the lifecycle events of every app and service instance into
billable intervals:

1. Read each event table and map every row to a typed event, once
2. Group events by resource guid and sort by (created_at, event guid)
3. Pair each opening event with the next closing event
4. Attach the plan name in effect at the start of each interval
5. Insert one resource_durations row per pair

Apps (STARTED/STOPPED) carry their memory footprint on the event and are
never storage-metered. Service instances (CREATED/DELETED) get NULL memory
and storage: their footprint is a property of the plan, not of the event.

This body runs once per ledger entry and does not deduplicate. Rebuilding
the durations from scratch is the job of a later migration.
"""

import json
import logging
import re
import sqlite3
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, TypeVar

from resource_billing.core.catalog import Migration
from resource_billing.storage.models import (
    SQLITE_MAX_INTEGER,
    AppUsageEvent,
    ResourceDuration,
    ServiceUsageEvent,
)

logger = logging.getLogger(__name__)

# Plan every app is billed against; app events carry no plan of their own.
COMPUTE_PLAN_GUID = "f4d4b95a-f55e-4593-8d54-3364c25798c4"

APP_RESOURCE_TYPE = "app"
SERVICE_RESOURCE_TYPE = "service"

APP_OPENING_STATE = "STARTED"
APP_CLOSING_STATE = "STOPPED"
SERVICE_OPENING_STATE = "CREATED"
SERVICE_CLOSING_STATE = "DELETED"

E = TypeVar("E", AppUsageEvent, ServiceUsageEvent)

# Hour-only UTC offset as written by Postgres, e.g. "+00" or "-05"
HOUR_OFFSET = re.compile(r"(:\d{2}(?:\.\d+)?[+-]\d{2})$")


def _non_negative_int(value: Any) -> int:
    """Coerce a payload number to a non-negative int, 0 when unusable."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        # int(float("inf")) raises OverflowError
        return 0
    if number > SQLITE_MAX_INTEGER:
        return 0
    return max(number, 0)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def parse_timestamp(value: str) -> datetime:
    """Parse an event timestamp into a naive UTC datetime.

    Raises:
        ValueError: If the value is not an ISO 8601 timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = HOUR_OFFSET.sub(r"\1:00", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _load_payload(created_at: str, raw_message: str) -> Tuple[datetime, Dict[str, Any]]:
    payload = json.loads(raw_message)
    if not isinstance(payload, dict):
        raise ValueError("payload is not a JSON object")
    return parse_timestamp(created_at), payload


def parse_app_event(created_at: str, guid: str, raw_message: str) -> AppUsageEvent:
    """Build a typed app event from a raw row.

    Raises:
        ValueError: If the payload is not a JSON object, the timestamp is
            malformed or the app guid is missing
    """
    timestamp, payload = _load_payload(created_at, raw_message)
    app_guid = payload.get("app_guid")
    if not app_guid:
        raise ValueError("app_guid is missing")
    return AppUsageEvent(
        created_at=timestamp,
        event_guid=guid,
        state=str(payload.get("state") or ""),
        app_guid=str(app_guid),
        app_name=_optional_str(payload.get("app_name")),
        org_guid=_optional_str(payload.get("org_guid")),
        space_guid=_optional_str(payload.get("space_guid")),
        plan_guid=_optional_str(payload.get("plan_guid")),
        instance_count=_non_negative_int(payload.get("instance_count")),
        memory_in_mb_per_instance=_non_negative_int(payload.get("memory_in_mb_per_instance")),
    )


def parse_service_event(created_at: str, guid: str, raw_message: str) -> ServiceUsageEvent:
    """Build a typed service instance event from a raw row.

    Raises:
        ValueError: If the payload is not a JSON object, the timestamp is
            malformed or the service instance guid is missing
    """
    timestamp, payload = _load_payload(created_at, raw_message)
    instance_guid = payload.get("service_instance_guid")
    if not instance_guid:
        raise ValueError("service_instance_guid is missing")
    return ServiceUsageEvent(
        created_at=timestamp,
        event_guid=guid,
        state=str(payload.get("state") or ""),
        service_instance_guid=str(instance_guid),
        service_instance_name=_optional_str(payload.get("service_instance_name")),
        org_guid=_optional_str(payload.get("org_guid")),
        space_guid=_optional_str(payload.get("space_guid")),
        service_plan_guid=_optional_str(payload.get("service_plan_guid")),
    )


def pair_events(
    events: Iterable[E],
    opening_state: str,
    closing_state: str
) -> Iterator[Tuple[E, Optional[E]]]:
    """Pair opening and closing events of a single resource.

    Events are walked in (created_at, event_guid) order. Once an opening
    event is taken, further opening events are ignored until a closing
    event arrives; closing events with nothing open are ignored. A trailing
    opening event is paired with None.
    """
    ordered = sorted(events, key=lambda e: (e.created_at, e.event_guid))
    opened: Optional[E] = None
    for event in ordered:
        if opened is None:
            if event.state == opening_state:
                opened = event
        elif event.state == closing_state:
            yield opened, event
            opened = None
    if opened is not None:
        yield opened, None


def _group_by_resource(events: Iterable[E], key: Callable[[E], str]) -> Dict[str, List[E]]:
    groups: Dict[str, List[E]] = defaultdict(list)
    for event in events:
        groups[key(event)].append(event)
    return groups


def app_durations(events: Iterable[AppUsageEvent]) -> List[ResourceDuration]:
    """Stitch app events into durations with memory taken from the opening event."""
    durations = []
    groups = _group_by_resource(events, lambda e: e.app_guid)
    for app_guid in sorted(groups):
        for opened, closed in pair_events(groups[app_guid], APP_OPENING_STATE, APP_CLOSING_STATE):
            durations.append(ResourceDuration(
                guid=app_guid,
                resource_type=APP_RESOURCE_TYPE,
                resource_name=opened.app_name,
                org_guid=opened.org_guid,
                space_guid=opened.space_guid,
                plan_guid=opened.plan_guid or COMPUTE_PLAN_GUID,
                start=opened.created_at,
                stop=closed.created_at if closed else None,
                memory_in_mb=opened.memory_in_mb,
                storage_in_mb=0,
            ))
    return durations


def service_durations(events: Iterable[ServiceUsageEvent]) -> List[ResourceDuration]:
    """Stitch service instance events into durations without a footprint."""
    durations = []
    groups = _group_by_resource(events, lambda e: e.service_instance_guid)
    for instance_guid in sorted(groups):
        pairs = pair_events(groups[instance_guid], SERVICE_OPENING_STATE, SERVICE_CLOSING_STATE)
        for opened, closed in pairs:
            durations.append(ResourceDuration(
                guid=instance_guid,
                resource_type=SERVICE_RESOURCE_TYPE,
                resource_name=opened.service_instance_name,
                org_guid=opened.org_guid,
                space_guid=opened.space_guid,
                plan_guid=opened.service_plan_guid,
                start=opened.created_at,
                stop=closed.created_at if closed else None,
                memory_in_mb=None,
                storage_in_mb=None,
            ))
    return durations


def _read_events(
    conn: sqlite3.Connection,
    table: str,
    parse: Callable[[str, str, str], E]
) -> List[E]:
    """Read and type every event of a table, skipping malformed rows."""
    events = []
    cursor = conn.execute(f"SELECT created_at, guid, raw_message FROM {table}")
    for created_at, guid, raw_message in cursor.fetchall():
        try:
            events.append(parse(created_at, guid, raw_message))
        except (TypeError, ValueError) as e:
            logger.warning("Skipping malformed event %s in %s: %s", guid, table, e)
    return events


def _plan_names(conn: sqlite3.Connection) -> Dict[str, List[Tuple[datetime, str]]]:
    """Every plan revision keyed by plan guid, oldest first."""
    revisions: Dict[str, List[Tuple[datetime, str]]] = defaultdict(list)
    cursor = conn.execute("SELECT plan_guid, valid_from, name FROM pricing_plans")
    for plan_guid, valid_from, name in cursor.fetchall():
        try:
            effective = parse_timestamp(valid_from)
        except (AttributeError, ValueError) as e:
            logger.warning("Skipping pricing plan %s revision %r: %s", plan_guid, valid_from, e)
            continue
        revisions[plan_guid].append((effective, name))
    for plan_revisions in revisions.values():
        plan_revisions.sort()
    return revisions


def _plan_name_at(
    revisions: Dict[str, List[Tuple[datetime, str]]],
    plan_guid: Optional[str],
    moment: datetime
) -> Optional[str]:
    name = None
    for valid_from, revision_name in revisions.get(plan_guid, []):
        if valid_from > moment:
            break
        name = revision_name
    return name


def migrate(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS resource_durations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            guid TEXT NOT NULL,
            resource_type TEXT NOT NULL,
            resource_name TEXT,
            org_guid TEXT,
            space_guid TEXT,
            plan_guid TEXT,
            plan_name TEXT,
            start TEXT NOT NULL,
            stop TEXT,
            memory_in_mb INTEGER,
            storage_in_mb INTEGER,
            CHECK (stop IS NULL OR stop >= start)
        )
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS resource_durations_guid_start_idx
        ON resource_durations (guid, start)
    """)

    durations = (
        app_durations(_read_events(conn, "app_usage_events", parse_app_event))
        + service_durations(_read_events(conn, "service_usage_events", parse_service_event))
    )
    revisions = _plan_names(conn)

    for duration in durations:
        conn.execute("""
            INSERT INTO resource_durations
            (guid, resource_type, resource_name, org_guid, space_guid, plan_guid,
             plan_name, start, stop, memory_in_mb, storage_in_mb)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            duration.guid,
            duration.resource_type,
            duration.resource_name,
            duration.org_guid,
            duration.space_guid,
            duration.plan_guid,
            _plan_name_at(revisions, duration.plan_guid, duration.start),
            duration.start.isoformat(),
            duration.stop.isoformat() if duration.stop else None,
            duration.memory_in_mb,
            duration.storage_in_mb,
        ))

    logger.info("Generated %d resource durations", len(durations))


MIGRATION = Migration(
    name="051_create_resource_durations",
    description="Generate resource durations from app and service usage events",
    migrate=migrate,
)
