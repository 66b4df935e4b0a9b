"""Configuration management for tablesync."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tablesync.utils.helpers import parse_duration


class ExtractionMode(str, Enum):
    """Load strategies a table can be synced with."""

    BATCH = "batch"
    INCREMENTAL = "incremental"


class RegistryStorage(str, Enum):
    """Backends for the watermark registry."""

    SQL = "sql"
    FILE = "file"


# ============================================================================
# Database Configuration
# ============================================================================
class DatabaseSettings(BaseModel):
    """Connection settings for a source or target database."""

    url: str = Field(default="sqlite:///tablesync.db", description="SQLAlchemy URL")
    schema_name: str | None = Field(default=None, description="Schema to read/write")
    pool_size: int = Field(default=5)
    max_overflow: int = Field(default=10)


# ============================================================================
# Sync Configuration
# ============================================================================
class SyncConfig(BaseModel):
    """Settings shared by every table's load action."""

    target_prefix: str = Field(default="", description="Prefix for target table names")
    overlap: str = Field(default="15 minutes", description="Incremental re-fetch window")
    batch_size: int = Field(default=10000, description="Rows per streamed chunk")
    staging_dir: str | None = Field(default=None, description="Directory for staging files")
    default_mode: ExtractionMode = Field(default=ExtractionMode.INCREMENTAL)

    @field_validator("overlap")
    @classmethod
    def validate_overlap(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def overlap_window(self) -> timedelta:
        return parse_duration(self.overlap)


class RegistryConfig(BaseModel):
    """Watermark registry configuration."""

    storage: RegistryStorage = Field(default=RegistryStorage.SQL)
    table_name: str = Field(default="meta_last_sync_times")
    path: str = Field(default=".tablesync/watermarks.json")


class TableConfig(BaseModel):
    """A single replicated table."""

    name: str
    columns: list[str] = Field(default_factory=list, description="Empty means all")
    exclude_columns: list[str] = Field(default_factory=list)
    primary_key: list[str] = Field(default_factory=lambda: ["id"])
    mode: ExtractionMode | None = Field(default=None)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Table name must not be empty")
        return v.strip()


# ============================================================================
# Connectors Configuration
# ============================================================================
class RetryConfig(BaseModel):
    """Retry configuration."""

    max_attempts: int = Field(default=3)
    initial_delay: float = Field(default=1.0)
    backoff_factor: float = Field(default=2.0)


class ConnectorsConfig(BaseModel):
    """Connectors configuration."""

    timeout: int = Field(default=30)
    retry: RetryConfig = Field(default_factory=RetryConfig)


# ============================================================================
# Logging Configuration
# ============================================================================
class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file: str | None = Field(default=None)


# ============================================================================
# Main Settings
# ============================================================================
# ${VAR} or ${VAR:default}, anywhere inside a string
_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}")

DEFAULT_CONFIG_PATHS = (
    Path("config/tablesync.yaml"),
    Path("tablesync.yaml"),
    Path.home() / ".tablesync" / "settings.yaml",
)


def expand_env_vars(value: Any) -> Any:
    """
    Substitute environment references in a loaded YAML document.

    Unset variables without a default are left as written so the error
    surfaces where the value is used.
    """
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    if not isinstance(value, str):
        return value

    def substitute(match: re.Match) -> str:
        name, default = match.groups()
        return os.environ.get(name, default if default is not None else match.group(0))

    return _ENV_REF.sub(substitute, value)


class Settings(BaseSettings):
    """
    Everything a sync run needs: both databases, the tables and how to load them.

    Values come from a YAML file (see ``from_yaml``) and can be overridden
    with ``TABLESYNC_`` environment variables, nesting with ``__``, e.g.
    ``TABLESYNC_SYNC__TARGET_PREFIX=replica_``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLESYNC_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    source: DatabaseSettings = Field(default_factory=DatabaseSettings)
    target: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    tables: list[TableConfig] = Field(default_factory=list)
    connectors: ConnectorsConfig = Field(default_factory=ConnectorsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML file, expanding ``${VAR:default}`` references."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        document = yaml.safe_load(path.read_text()) or {}
        return cls(**expand_env_vars(document))

    def get_table(self, name: str) -> TableConfig | None:
        return next((t for t in self.tables if t.name == name), None)

    def mode_for(self, table: TableConfig) -> ExtractionMode:
        """A table's own mode, else the configured default."""
        return table.mode or self.sync.default_mode


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """
    Settings from ``config_path``, else the first default location that exists.

    Falls back to defaults plus environment overrides when no file is found.
    Cached per path.
    """
    if config_path:
        return Settings.from_yaml(config_path)
    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return Settings.from_yaml(path)
    return Settings()
