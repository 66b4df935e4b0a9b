"""Builds load actions from settings and runs them table by table."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Iterator

from tablesync.connectors.databases.sql import SQLConnector
from tablesync.connectors.registry import create_connector
from tablesync.core.config import (
    DatabaseSettings,
    ExtractionMode,
    RegistryStorage,
    Settings,
    TableConfig,
)
from tablesync.core.exceptions import ConfigurationError
from tablesync.core.utils import Clock, utc_now
from tablesync.sync.actions import LoadAction
from tablesync.sync.batch import BatchLoadAction
from tablesync.sync.incremental import IncrementalLoadAction
from tablesync.sync.pipeline import Stage
from tablesync.sync.plan import TablePlan
from tablesync.sync.registry import (
    FileWatermarkRegistry,
    SQLWatermarkRegistry,
    WatermarkRegistry,
)
from tablesync.utils.helpers import generate_id
from tablesync.utils.logging import (
    TimingLogger,
    clear_sync_context,
    get_logger,
    set_sync_context,
    table_context,
)

ACTIONS: dict[ExtractionMode, type[LoadAction]] = {
    ExtractionMode.BATCH: BatchLoadAction,
    ExtractionMode.INCREMENTAL: IncrementalLoadAction,
}


@dataclass
class SyncResult:
    """Outcome of one table's load."""

    table: str
    mode: ExtractionMode
    status: str
    rows: int = 0
    duration_seconds: float = 0.0
    error: str | None = None
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class SyncManager:
    """
    Runs the configured tables through their load actions.

    Tables are processed one after another. ``stages_for`` hands out the
    actions with their stages instead, for coordinators that interleave
    tables themselves.
    """

    def __init__(
        self,
        settings: Settings,
        source: SQLConnector | None = None,
        target: SQLConnector | None = None,
        registry: WatermarkRegistry | None = None,
        logger: TimingLogger | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.source = source or self._make_connector("source", settings.source)
        self.target = target or self._make_connector("target", settings.target)
        self.registry = registry or self._make_registry()
        self.logger = logger or TimingLogger(get_logger("tablesync.sync"))
        self.clock = clock

    def _make_connector(self, name: str, db: DatabaseSettings) -> SQLConnector:
        retry = self.settings.connectors.retry
        return create_connector(
            db.url,
            name=name,
            schema=db.schema_name,
            batch_size=self.settings.sync.batch_size,
            timeout=self.settings.connectors.timeout,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            retry_attempts=retry.max_attempts,
            retry_delay=retry.initial_delay,
            retry_backoff=retry.backoff_factor,
        )

    def _make_registry(self) -> WatermarkRegistry:
        config = self.settings.registry
        if config.storage == RegistryStorage.FILE:
            return FileWatermarkRegistry(config.path)
        return SQLWatermarkRegistry(self.target, table_name=config.table_name)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------
    def connect(self) -> None:
        for connector in (self.source, self.target):
            if not connector.is_connected:
                connector.connect()

    def close(self) -> None:
        self.source.disconnect()
        self.target.disconnect()

    def __enter__(self) -> "SyncManager":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def build_plan(self, table: TableConfig) -> TablePlan:
        return TablePlan(
            table_name=table.name,
            source=self.source,
            columns=list(table.columns),
            exclude_columns=list(table.exclude_columns),
            primary_key=list(table.primary_key),
            target_prefix=self.settings.sync.target_prefix,
        )

    def build_action(
        self,
        table: TableConfig,
        mode: ExtractionMode | None = None,
    ) -> LoadAction:
        """Create a fresh action for one table, in the given or configured mode."""
        mode = mode or self.settings.mode_for(table)
        action_class = ACTIONS[ExtractionMode(mode)]
        return action_class(
            self.target,
            self.build_plan(table),
            self.registry,
            self.logger,
            now=self.clock,
            staging_dir=self.settings.sync.staging_dir,
            batch_size=self.settings.sync.batch_size,
            overlap=self.settings.sync.overlap_window,
        )

    def select_tables(self, names: list[str] | None = None) -> list[TableConfig]:
        if not names:
            return list(self.settings.tables)
        selected = []
        for name in names:
            table = self.settings.get_table(name)
            if table is None:
                raise ConfigurationError(f"Table not configured: {name}")
            selected.append(table)
        return selected

    def stages_for(
        self,
        mode: ExtractionMode | None = None,
        tables: list[str] | None = None,
    ) -> Iterator[tuple[str, LoadAction, tuple[Stage, ...]]]:
        """Yield ``(table, action, stages)`` for an external coordinator."""
        for table in self.select_tables(tables):
            action = self.build_action(table, mode)
            yield table.name, action, action.stages()

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------
    def run_table(self, table: TableConfig, mode: ExtractionMode | None = None) -> SyncResult:
        """Run one table's load, turning a failure into a failed result."""
        mode = ExtractionMode(mode or self.settings.mode_for(table))
        action = self.build_action(table, mode)
        start = time.perf_counter()
        try:
            with table_context(table.name):
                final = action()
        except Exception as e:
            self.logger.error(
                "Table sync failed",
                table=table.name,
                mode=mode.value,
                stage=getattr(e, "stage", None),
                error=str(e),
                error_type=type(e).__name__,
            )
            return SyncResult(
                table=table.name,
                mode=mode,
                status="failed",
                duration_seconds=time.perf_counter() - start,
                error=str(e),
            )

        status = "skipped" if final.skipped else "synced"
        return SyncResult(
            table=table.name,
            mode=mode,
            status=status,
            rows=action.rows_loaded if not final.skipped else 0,
            duration_seconds=time.perf_counter() - start,
            timings={
                label: duration
                for label, duration in self.logger.timings.items()
                if label.endswith(f".{table.name}")
            },
        )

    def run(
        self,
        mode: ExtractionMode | None = None,
        tables: list[str] | None = None,
    ) -> list[SyncResult]:
        """
        Sync the selected tables (all configured ones by default).

        A failing table is logged and reported; the remaining tables still
        run.

        Args:
            mode: Force a strategy for every table
            tables: Names of configured tables to sync

        Returns:
            One result per table, in configuration order
        """
        selected = self.select_tables(tables)
        run_id = generate_id("run")
        self.connect()
        set_sync_context(run_id=run_id)

        self.logger.info("Starting sync run", tables=len(selected))
        try:
            results = [self.run_table(table, mode) for table in selected]
        finally:
            clear_sync_context()

        self.logger.info(
            "Sync run finished",
            run_id=run_id,
            synced=sum(1 for r in results if r.status == "synced"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            failed=sum(1 for r in results if r.status == "failed"),
        )
        return results
