"""
tablesync - staged table replication between SQL databases

Copies tables from a source database into a target database, either as a
full batch replace or incrementally by watermark, through a four-stage
pipeline (prepare, extract, load, post_load) that coordinators can run whole
or interleave across tables.
"""

__version__ = "0.1.0"

from tablesync.core.config import ExtractionMode, Settings, get_settings
from tablesync.core.exceptions import (
    ConfigurationError,
    ConnectionError,
    ExtractionError,
    LoadError,
    SchemaError,
    TableSyncError,
    WatermarkError,
)


# Lazy imports for modules that pull in SQLAlchemy and polars
def __getattr__(name: str):
    """Lazy import for heavy modules."""
    if name == "SyncManager":
        from tablesync.sync.manager import SyncManager
        return SyncManager
    elif name == "SyncResult":
        from tablesync.sync.manager import SyncResult
        return SyncResult
    elif name == "BatchLoadAction":
        from tablesync.sync import BatchLoadAction
        return BatchLoadAction
    elif name == "IncrementalLoadAction":
        from tablesync.sync import IncrementalLoadAction
        return IncrementalLoadAction
    elif name == "NullAction":
        from tablesync.sync import NullAction
        return NullAction
    elif name == "TablePlan":
        from tablesync.sync import TablePlan
        return TablePlan
    elif name == "create_connector":
        from tablesync.connectors import create_connector
        return create_connector
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Version
    "__version__",
    # Configuration
    "ExtractionMode",
    "Settings",
    "get_settings",
    # Sync (lazy)
    "SyncManager",
    "SyncResult",
    "BatchLoadAction",
    "IncrementalLoadAction",
    "NullAction",
    "TablePlan",
    # Connectors (lazy)
    "create_connector",
    # Exceptions
    "TableSyncError",
    "ConfigurationError",
    "ConnectionError",
    "ExtractionError",
    "LoadError",
    "SchemaError",
    "WatermarkError",
]
