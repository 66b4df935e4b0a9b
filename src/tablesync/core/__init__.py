"""Core module for tablesync."""

from tablesync.core.config import ExtractionMode, Settings, get_settings
from tablesync.core.exceptions import (
    ConfigurationError,
    ConnectionError,
    ExtractionError,
    LoadError,
    RetryExhaustedError,
    SchemaError,
    TableLoadError,
    TableSyncError,
    WatermarkError,
)

__all__ = [
    "ExtractionMode",
    "Settings",
    "get_settings",
    "TableSyncError",
    "TableLoadError",
    "ConfigurationError",
    "ConnectionError",
    "ExtractionError",
    "LoadError",
    "SchemaError",
    "WatermarkError",
    "RetryExhaustedError",
]
