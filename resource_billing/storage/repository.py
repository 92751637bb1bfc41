"""
Repository functions for data access.

Append helpers for the usage event store, pricing reference data and read
access to the generated resource durations. Each function opens its own
connection, matching how the event collector and pricing sync use them.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple

from .db import DEFAULT_DB_PATH, get_connection
from .models import (
    CurrencyRate,
    PricingPlan,
    PricingPlanComponent,
    ResourceDuration,
    UsageEvent,
    VATRate,
)

APP_USAGE_EVENTS = "app_usage_events"
SERVICE_USAGE_EVENTS = "service_usage_events"
USAGE_EVENT_TABLES = (APP_USAGE_EVENTS, SERVICE_USAGE_EVENTS)


def _event_table(table: str) -> str:
    if table not in USAGE_EVENT_TABLES:
        raise ValueError(f"Unknown usage event table: {table}")
    return table


def _insert_event(conn: sqlite3.Connection, table: str, event: UsageEvent) -> None:
    conn.execute(
        f"INSERT INTO {_event_table(table)} (created_at, guid, raw_message) VALUES (?, ?, ?)",
        (event.created_at.isoformat(), event.guid, event.raw_message)
    )


def insert_usage_events(
    table: str,
    events: List[UsageEvent],
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Append multiple usage events atomically.

    All events are inserted in a single transaction to ensure consistency.
    This operation is append-only - events cannot be modified after insertion.

    Args:
        table: Either app_usage_events or service_usage_events
        events: List of usage events to record
        db_path: Path to SQLite database file
    """
    if not events:
        return

    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN TRANSACTION")
        for event in events:
            _insert_event(conn, table, event)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def insert_app_usage_event(event: UsageEvent, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single app usage event."""
    insert_usage_events(APP_USAGE_EVENTS, [event], db_path)


def insert_service_usage_event(event: UsageEvent, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single service usage event."""
    insert_usage_events(SERVICE_USAGE_EVENTS, [event], db_path)


def fetch_usage_events(table: str, db_path: str = DEFAULT_DB_PATH) -> List[UsageEvent]:
    """Fetch every raw event of a table, oldest first.

    Ties on created_at are ordered by event guid.
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            f"SELECT created_at, guid, raw_message FROM {_event_table(table)} "
            "ORDER BY created_at, guid"
        )
        return [
            UsageEvent(
                created_at=datetime.fromisoformat(row[0]),
                guid=row[1],
                raw_message=row[2]
            )
            for row in cursor.fetchall()
        ]
    finally:
        conn.close()


def insert_pricing_plan(plan: PricingPlan, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a plan revision together with its ordered components.

    Requires the schema to include the footprint and node columns.

    Args:
        plan: The plan revision to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN TRANSACTION")
        cursor = conn.execute("""
            INSERT INTO pricing_plans
            (name, valid_from, plan_guid, memory_in_mb, storage_in_mb, number_of_nodes)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            plan.name,
            plan.valid_from.isoformat(),
            plan.plan_guid,
            plan.memory_in_mb,
            plan.storage_in_mb,
            plan.number_of_nodes
        ))
        plan_id = cursor.lastrowid
        for position, component in enumerate(plan.components):
            conn.execute("""
                INSERT INTO pricing_plan_components
                (pricing_plan_id, position, name, formula, vat_code, currency_code)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                plan_id,
                position,
                component.name,
                component.formula,
                component.vat_code,
                component.currency_code
            ))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetch_pricing_plans(
    plan_guid: Optional[str] = None,
    db_path: str = DEFAULT_DB_PATH
) -> List[PricingPlan]:
    """Fetch plan revisions ordered by plan guid and valid_from.

    Args:
        plan_guid: Optional filter for a single plan's revisions
        db_path: Path to SQLite database file

    Returns:
        Plan revisions with their components in declared order
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT id, name, plan_guid, valid_from, memory_in_mb,
                   storage_in_mb, number_of_nodes
            FROM pricing_plans
        """
        params: List[str] = []
        if plan_guid:
            query += " WHERE plan_guid = ?"
            params.append(plan_guid)
        query += " ORDER BY plan_guid, valid_from"

        plans = []
        for row in conn.execute(query, params).fetchall():
            components = [
                PricingPlanComponent(
                    name=c[0],
                    formula=c[1],
                    vat_code=c[2],
                    currency_code=c[3]
                )
                for c in conn.execute("""
                    SELECT name, formula, vat_code, currency_code
                    FROM pricing_plan_components
                    WHERE pricing_plan_id = ?
                    ORDER BY position
                """, (row[0],)).fetchall()
            ]
            plans.append(PricingPlan(
                name=row[1],
                plan_guid=row[2],
                valid_from=datetime.fromisoformat(row[3]),
                components=components,
                memory_in_mb=row[4],
                storage_in_mb=row[5],
                number_of_nodes=row[6]
            ))
        return plans
    finally:
        conn.close()


def _insert_rate(table: str, row: Tuple[str, str, float], db_path: str) -> None:
    conn = get_connection(db_path)
    try:
        conn.execute(f"INSERT INTO {table} (code, valid_from, rate) VALUES (?, ?, ?)", row)
        conn.commit()
    finally:
        conn.close()


def insert_vat_rate(rate: VATRate, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert an effective-dated VAT rate."""
    _insert_rate("vat_rates", (rate.code, rate.valid_from.isoformat(), rate.rate), db_path)


def insert_currency_rate(rate: CurrencyRate, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert an effective-dated currency rate."""
    _insert_rate("currency_rates", (rate.code, rate.valid_from.isoformat(), rate.rate), db_path)


def fetch_resource_durations(
    guid: Optional[str] = None,
    db_path: str = DEFAULT_DB_PATH
) -> List[ResourceDuration]:
    """Fetch resource durations ordered by resource guid and start.

    Args:
        guid: Optional filter for a single resource
        db_path: Path to SQLite database file

    Returns:
        List of resource durations; stop is None for open intervals
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT guid, resource_type, resource_name, org_guid, space_guid,
                   plan_guid, plan_name, start, stop, memory_in_mb, storage_in_mb
            FROM resource_durations
        """
        params: List[str] = []
        if guid:
            query += " WHERE guid = ?"
            params.append(guid)
        query += " ORDER BY guid, start"

        durations = []
        for row in conn.execute(query, params).fetchall():
            durations.append(ResourceDuration(
                guid=row[0],
                resource_type=row[1],
                resource_name=row[2],
                org_guid=row[3],
                space_guid=row[4],
                plan_guid=row[5],
                plan_name=row[6],
                start=datetime.fromisoformat(row[7]),
                stop=datetime.fromisoformat(row[8]) if row[8] else None,
                memory_in_mb=row[9],
                storage_in_mb=row[10]
            ))
        return durations
    finally:
        conn.close()
