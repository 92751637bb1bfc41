"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for migrator configs.
"""

import logging
import os
import tempfile

import pytest
import yaml

from resource_billing.config.loader import (
    BillingConfig,
    DatabaseConfig,
    LoggingConfig,
    default_config,
    load_config,
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_path = self._write_config({
            "database": {"path": "/var/lib/billing/billing.db", "timeout": 30},
            "logging": {"level": "DEBUG"},
        })

        config = load_config(config_path)

        assert config.database.path == "/var/lib/billing/billing.db"
        assert config.database.timeout == 30.0
        assert config.logging.level == "DEBUG"
        assert config.logging.numeric_level == logging.DEBUG

    def test_sections_are_optional(self):
        """Test that missing sections fall back to defaults."""
        config_path = self._write_config({"logging": {"level": "WARNING"}})

        config = load_config(config_path)

        assert config.database == DatabaseConfig()
        assert config.logging.level == "WARNING"

    def test_log_level_is_case_insensitive(self):
        """Test that log levels are normalised to upper case."""
        config_path = self._write_config({"logging": {"level": "info"}})
        assert load_config(config_path).logging.level == "INFO"

    def test_default_config(self):
        """Test the built-in defaults."""
        config = default_config()
        assert config == BillingConfig()
        assert config.database.path == "resource_billing.db"
        assert config.logging.level == "INFO"

    def test_missing_file(self):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml(self):
        """Test that invalid YAML is reported."""
        config_path = os.path.join(self.temp_dir, "broken.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("database: [unclosed\n")

        with pytest.raises(yaml.YAMLError, match="Invalid YAML"):
            load_config(config_path)

    def test_empty_file(self):
        """Test that an empty configuration is rejected."""
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w', encoding='utf-8').close()

        with pytest.raises(ValueError, match="empty"):
            load_config(config_path)

    def test_non_mapping_document(self):
        """Test that a top-level list is rejected."""
        config_path = self._write_config(["database"])
        with pytest.raises(ValueError, match="must be a dictionary"):
            load_config(config_path)

    def test_unknown_top_level_key(self):
        """Test that unknown sections are rejected."""
        config_path = self._write_config({"databse": {"path": "x.db"}})
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_config(config_path)

    def test_unknown_database_key(self):
        """Test that unknown database keys are rejected."""
        config_path = self._write_config({"database": {"path": "x.db", "host": "db"}})
        with pytest.raises(ValueError, match="Unknown keys in database"):
            load_config(config_path)

    def test_section_must_be_mapping(self):
        """Test that a scalar section is rejected."""
        config_path = self._write_config({"database": "x.db"})
        with pytest.raises(ValueError, match="'database' must be a dictionary"):
            load_config(config_path)

    def test_empty_database_path(self):
        """Test that an empty database path is rejected."""
        config_path = self._write_config({"database": {"path": ""}})
        with pytest.raises(ValueError, match="path cannot be empty"):
            load_config(config_path)

    @pytest.mark.parametrize("timeout", [True, "soon"])
    def test_non_numeric_timeout(self, timeout):
        """Test that the timeout must be a number."""
        config_path = self._write_config({"database": {"timeout": timeout}})
        with pytest.raises(ValueError, match="timeout"):
            load_config(config_path)

    def test_negative_timeout(self):
        """Test that a negative timeout is rejected."""
        config_path = self._write_config({"database": {"timeout": -1}})
        with pytest.raises(ValueError, match="cannot be negative"):
            load_config(config_path)

    def test_invalid_log_level(self):
        """Test that unknown log levels are rejected."""
        config_path = self._write_config({"logging": {"level": "VERBOSE"}})
        with pytest.raises(ValueError, match="log level must be one of"):
            load_config(config_path)

    def test_unknown_logging_key(self):
        """Test that unknown logging keys are rejected."""
        config_path = self._write_config({"logging": {"level": "INFO", "format": "json"}})
        with pytest.raises(ValueError, match="Unknown keys in logging"):
            load_config(config_path)


class TestConfigDataclasses:
    """Test direct construction of config objects."""

    def test_logging_config_validates_level(self):
        with pytest.raises(ValueError):
            LoggingConfig(level="LOUD")

    def test_configs_are_frozen(self):
        config = DatabaseConfig()
        with pytest.raises(Exception):
            config.path = "other.db"
