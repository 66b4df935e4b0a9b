"""Staged table loads: plans, actions, strategies and watermark storage.

``SyncManager`` lives in ``tablesync.sync.manager``; it is not imported here
because it depends on the connectors package, which itself imports from this
package.
"""

from tablesync.sync.actions import LoadAction
from tablesync.sync.batch import BatchLoadAction
from tablesync.sync.incremental import IncrementalLoadAction
from tablesync.sync.pipeline import STAGES, NullAction, Stage, run_stages
from tablesync.sync.plan import TablePlan
from tablesync.sync.registry import (
    FileWatermarkRegistry,
    SQLWatermarkRegistry,
    Watermark,
    WatermarkRegistry,
)
from tablesync.sync.schema import SchemaMaker
from tablesync.sync.staging import StagingFile

__all__ = [
    "LoadAction",
    "NullAction",
    "BatchLoadAction",
    "IncrementalLoadAction",
    "Stage",
    "STAGES",
    "run_stages",
    "TablePlan",
    "Watermark",
    "WatermarkRegistry",
    "SQLWatermarkRegistry",
    "FileWatermarkRegistry",
    "SchemaMaker",
    "StagingFile",
]
