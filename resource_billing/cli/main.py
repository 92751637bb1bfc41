"""
CLI interface for resource billing.

Deployment-time entry point for bootstrapping the ledger and applying
schema migrations.
"""

import logging
import sqlite3
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from resource_billing.config.loader import BillingConfig, default_config, load_config
from resource_billing.core.catalog import get_catalog
from resource_billing.core.engine import SchemaClient
from resource_billing.core.errors import ResourceBillingError
from resource_billing.storage.db import database_exists

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CLI_ERRORS = (ResourceBillingError, sqlite3.Error, ValueError, OSError, yaml.YAMLError)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML configuration file"
)


def _load(config_path: Optional[str]) -> BillingConfig:
    """Load configuration and apply its log level."""
    config = load_config(config_path) if config_path else default_config()
    logging.basicConfig(
        level=config.logging.numeric_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    return config


def _client(config: BillingConfig) -> SchemaClient:
    return SchemaClient(config.database.path, timeout=config.database.timeout)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Resource billing schema migrator."""
    if ctx.invoked_subcommand is None:
        console.print("Resource Billing - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = ConfigOption):
    """Create the schema ledger if it doesn't exist."""
    try:
        config = _load(config_path)
        with _client(config) as client:
            client.init_schema()
        console.print("[green]✓[/] Schema ledger initialized")
    except CLI_ERRORS as e:
        console.print(f"[red]Error initializing schema ledger:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def migrate(
    up_to: Optional[str] = typer.Option(
        None,
        "--up-to",
        "-u",
        help="Apply migrations up to and including this one"
    ),
    config_path: Optional[str] = ConfigOption
):
    """Apply pending migrations in order."""
    try:
        config = _load(config_path)
        with _client(config) as client:
            applied = client.migrate(up_to=up_to)
    except CLI_ERRORS as e:
        console.print(f"[red]Migration failed:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    if not applied:
        console.print("[green]✓[/] Schema is up to date")
    for name in applied:
        console.print(f"[green]✓[/] Applied {name}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def status(config_path: Optional[str] = ConfigOption):
    """Show every known migration and when it was applied."""
    try:
        config = _load(config_path)
        names = get_catalog().sequence()
        records = {}
        if database_exists(config.database.path):
            with SchemaClient(
                config.database.path, timeout=config.database.timeout, read_only=True
            ) as client:
                records = {r.name: r.applied_at for r in client.applied_migrations()}
    except CLI_ERRORS as e:
        console.print(f"[red]Error reading schema ledger:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Schema Migrations")
    table.add_column("Migration")
    table.add_column("Applied At")
    for name in names:
        applied_at = records.get(name)
        table.add_row(name, applied_at.isoformat() if applied_at else "[yellow]pending[/]")
    console.print(table)

    pending = sum(1 for name in names if name not in records)
    console.print(f"{len(names) - pending} applied, {pending} pending")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def sequence(
    before: Optional[str] = typer.Option(
        None,
        "--before",
        "-b",
        help="Only list migrations strictly before this one"
    )
):
    """List migration names in application order. Never touches the database."""
    try:
        catalog = get_catalog()
        names = catalog.sequence_before(before) if before else catalog.sequence()
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    for name in names:
        console.print(name)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
