"""Configuration Manager for the projection engine and its document store.

This module loads engine and store settings from environment variables or a
JSON file and validates them with Pydantic before anything runs.

Security Impact:
    - Store table and column names are validated as bare SQL identifiers,
      since they are interpolated into queries
    - Paths are checked at load time so a misconfiguration fails fast

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors
"""

import os
import json
import logging
import re
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from stateless_fhir.domain.enums import UnsupportedResourcePolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "SF_"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_sql_identifier(name: str, kind: str = "identifier") -> str:
    """Check that ``name`` is a bare SQL identifier.

    Raises:
        ValueError: If the name contains anything but letters, digits and
                    underscores, or starts with a digit
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL {kind}: {name!r}")
    return name


class EngineConfig(BaseModel):
    """Projection engine configuration.

    Parameters:
        max_workers: Worker threads used to process a batch (1 = sequential)
        batch_size: Documents handed to the worker pool at a time
        unsupported_resources: Pass-through policy for types with no schema
        schema_path: Optional JSON schema file merged over the built-in table
    """

    max_workers: int = Field(default=1, ge=1, description="Worker threads per batch")
    batch_size: int = Field(default=500, ge=1, description="Documents per batch")
    unsupported_resources: UnsupportedResourcePolicy = Field(
        default=UnsupportedResourcePolicy.SKIP,
        description="skip or minimal",
    )
    schema_path: Optional[str] = Field(None, description="Schema override file (JSON)")

    @field_validator("schema_path")
    @classmethod
    def validate_schema_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate the schema override file exists (if provided)."""
        if v is None:
            return v
        if not Path(v).is_file():
            raise ValueError(f"Schema file does not exist: {v}")
        return v


class StoreConfig(BaseModel):
    """Document store configuration.

    Parameters:
        db_path: Path to the DuckDB database file (or ':memory:')
        table: Generic resource table, one document per row
        id_column: Stable identifier column
        content_column: Raw payload column
    """

    db_path: str = Field(default=":memory:", description="Path to DuckDB database file")
    table: str = Field(default="uniform_resource", description="Resource table")
    id_column: str = Field(default="uniform_resource_id", description="Identifier column")
    content_column: str = Field(default="content", description="Payload column")

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: str) -> str:
        """Validate database directory exists."""
        # Allow in-memory databases
        if v == ":memory:":
            return v

        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")

        return str(db_path_obj)

    @field_validator("table", "id_column", "content_column")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Validate table and column names."""
        return validate_sql_identifier(v)


def _load_dotenv() -> None:
    # .env at the project root, next to pyproject.toml
    env_path = Path(__file__).parent.parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.debug(f"Loaded environment variables from {env_path}")


def _drop_unset(values: Dict[str, Optional[str]]) -> Dict[str, str]:
    return {k: v for k, v in values.items() if v is not None and v != ""}


class ConfigManager:
    """Configuration manager for engine and store settings.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        engine_config = config.get_engine_config()

        # Load from file
        config = ConfigManager.from_file("config.json")
        store_config = config.get_store_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary with optional ``engine`` and
                         ``store`` sections
        """
        self._config_data = config_data
        self._engine_config: Optional[EngineConfig] = None
        self._store_config: Optional[StoreConfig] = None

    @classmethod
    def from_environment(cls) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - SF_MAX_WORKERS: Worker threads per batch
            - SF_BATCH_SIZE: Documents per batch
            - SF_UNSUPPORTED_RESOURCES: skip or minimal
            - SF_SCHEMA_PATH: Schema override file
            - SF_STORE_PATH: Path to DuckDB database file
            - SF_STORE_TABLE: Resource table name
            - SF_STORE_ID_COLUMN: Identifier column name
            - SF_STORE_CONTENT_COLUMN: Payload column name

        A ``.env`` file in the project root is loaded first if present;
        variables already set in the environment win.

        Returns:
            ConfigManager instance
        """
        _load_dotenv()

        config_data = {
            "engine": _drop_unset({
                "max_workers": os.getenv(f"{ENV_PREFIX}MAX_WORKERS"),
                "batch_size": os.getenv(f"{ENV_PREFIX}BATCH_SIZE"),
                "unsupported_resources": os.getenv(f"{ENV_PREFIX}UNSUPPORTED_RESOURCES"),
                "schema_path": os.getenv(f"{ENV_PREFIX}SCHEMA_PATH"),
            }),
            "store": _drop_unset({
                "db_path": os.getenv(f"{ENV_PREFIX}STORE_PATH"),
                "table": os.getenv(f"{ENV_PREFIX}STORE_TABLE"),
                "id_column": os.getenv(f"{ENV_PREFIX}STORE_ID_COLUMN"),
                "content_column": os.getenv(f"{ENV_PREFIX}STORE_CONTENT_COLUMN"),
            }),
        }

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a JSON object")

        return cls(config_data)

    def get_engine_config(self) -> EngineConfig:
        """Get engine configuration.

        Raises:
            pydantic.ValidationError: If a value is out of range or unknown
        """
        if self._engine_config is None:
            self._engine_config = EngineConfig(**self._config_data.get("engine", {}))
        return self._engine_config

    def get_store_config(self) -> StoreConfig:
        """Get document store configuration.

        Raises:
            pydantic.ValidationError: If a path or identifier is invalid
        """
        if self._store_config is None:
            self._store_config = StoreConfig(**self._config_data.get("store", {}))
        return self._store_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "engine.batch_size")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


# ============================================================================
# Convenience Functions
# ============================================================================

def get_engine_config() -> EngineConfig:
    """Convenience function to get engine configuration from environment."""
    return ConfigManager.from_environment().get_engine_config()


def get_store_config() -> StoreConfig:
    """Convenience function to get store configuration from environment."""
    return ConfigManager.from_environment().get_store_config()
