"""
Configuration management and loading.

Handles the migrator's database and logging settings.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

import yaml

from resource_billing.storage.db import DEFAULT_DB_PATH

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DatabaseConfig:
    """Location of the billing database."""
    path: str = DEFAULT_DB_PATH
    timeout: float = 5.0

    def __post_init__(self):
        """Validate database settings."""
        if not self.path:
            raise ValueError("database path cannot be empty")
        if self.timeout < 0:
            raise ValueError("database timeout cannot be negative")


@dataclass(frozen=True)
class LoggingConfig:
    """Log level applied by the CLI."""
    level: str = "INFO"

    def __post_init__(self):
        """Validate log level is a standard logging level."""
        if self.level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of: {list(LOG_LEVELS)}")

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.level)


@dataclass(frozen=True)
class BillingConfig:
    """Complete migrator configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def default_config() -> BillingConfig:
    """Built-in configuration used when no file is given."""
    return BillingConfig()


def load_config(path: str) -> BillingConfig:
    """Load and validate configuration from YAML file.

    Unknown keys are rejected so a typo never silently points the migrator
    at the wrong database.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated BillingConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'database', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    database = DatabaseConfig()
    if 'database' in raw_config:
        database = _parse_database_config(_section(raw_config, 'database'))

    logging_config = LoggingConfig()
    if 'logging' in raw_config:
        logging_config = _parse_logging_config(_section(raw_config, 'logging'))

    return BillingConfig(database=database, logging=logging_config)


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config[name]
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _parse_database_config(data: Dict) -> DatabaseConfig:
    """Parse and validate the database section.

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'path', 'timeout'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in database: {unknown_keys}")

    path = data.get('path', DEFAULT_DB_PATH)
    if not isinstance(path, str):
        raise ValueError("'path' in database must be a string")

    timeout = data.get('timeout', 5.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValueError("'timeout' in database must be a number")

    return DatabaseConfig(path=path, timeout=float(timeout))


def _parse_logging_config(data: Dict) -> LoggingConfig:
    """Parse and validate the logging section.

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'level'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in logging: {unknown_keys}")

    level = data.get('level', 'INFO')
    if not isinstance(level, str):
        raise ValueError("'level' in logging must be a string")

    return LoggingConfig(level=level.upper())
