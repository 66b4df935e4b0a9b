"""Load actions: the stateful transfer of one table from source to target."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from tablesync.core.utils import Clock, ensure_utc, utc_now
from tablesync.sync.pipeline import STAGES, NullAction, Stage, run_stages
from tablesync.sync.schema import SchemaMaker
from tablesync.sync.staging import StagingFile
from tablesync.utils.helpers import trusted_watermark_column
from tablesync.utils.logging import TimingLogger, get_logger

if TYPE_CHECKING:
    from tablesync.connectors.databases.sql import SQLConnector
    from tablesync.sync.plan import TablePlan
    from tablesync.sync.registry import Watermark, WatermarkRegistry

T = TypeVar("T")

DEFAULT_OVERLAP = timedelta(minutes=15)


class LoadAction(ABC):
    """
    Transfer of one table from a source to a target.

    The action can be run in full by calling it, or its stages can be taken
    from ``stages()`` and interleaved with other tables' stages: a load taxes
    the source during extract and the target during load, so a coordinator
    can start the next table's extract while this one loads.

    Subclasses provide ``extract_data``, ``load_data`` and the watermark
    fields committed after a successful load.
    """

    operation: str = "load"
    skipped = False
    overlap_window: timedelta = DEFAULT_OVERLAP

    def __init__(
        self,
        target: "SQLConnector",
        plan: "TablePlan",
        registry: "WatermarkRegistry",
        logger: TimingLogger | None = None,
        now: Clock = utc_now,
        staging_dir: str | None = None,
        batch_size: int | None = None,
        overlap: timedelta | None = None,
    ) -> None:
        self.target = target
        self.plan = plan
        self.registry = registry
        self.logger = (logger or TimingLogger(get_logger("tablesync.sync"))).bind(
            table=plan.table_name,
            operation=self.operation,
        )
        self.now = now
        self.staging_dir = staging_dir
        self.batch_size = batch_size
        if overlap is not None:
            self.overlap_window = overlap

        self.watermark: Watermark | None = None
        self.staging: StagingFile | None = None
        self.started_at: datetime | None = None
        self.candidate_last_row_at: Any | None = None
        self.rows_loaded = 0
        self.loaded = False

    @property
    def table_name(self) -> str:
        return self.plan.table_name

    @property
    def source(self) -> "SQLConnector":
        return self.plan.source

    @property
    def overlap(self) -> timedelta:
        return self.overlap_window

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    @classmethod
    def stages(cls) -> tuple[Stage, ...]:
        """The four stage functions, uninvoked."""
        return STAGES

    def __call__(self) -> "LoadAction | NullAction":
        return run_stages(self, self.stages())

    def do_prepare(self) -> "LoadAction | None":
        """Run the readiness gate; create the target table when ready."""
        if not self.measure("prepare", self.prepare):
            return None
        self.ensure_target_exists()
        return self

    @abstractmethod
    def extract_data(self) -> "LoadAction":
        pass

    @abstractmethod
    def load_data(self) -> "LoadAction":
        pass

    @abstractmethod
    def watermark_fields(self) -> dict[str, Any]:
        """Fields committed to the registry once the load has succeeded."""
        pass

    def post_load(self) -> "LoadAction":
        """Commit the watermark if the load succeeded, then release staging."""
        try:
            if self.loaded:
                self.measure(
                    "post_load",
                    lambda: self.registry.set(self.table_name, **self.watermark_fields()),
                )
        finally:
            self.release_staging()
        return self

    # ------------------------------------------------------------------
    # Prepare
    # ------------------------------------------------------------------
    def prepare(self) -> bool:
        """
        Decide whether the table is ready to sync.

        A missing source table is an expected condition (dropped or renamed
        upstream) and only makes the table skip this run.
        """
        self.registry.ensure_storage_exists()
        self.source.ensure_connection()

        if not self.source.table_exists(self.table_name):
            self.logger.info("Source table missing, skipping")
            return False

        schema = None if self.plan.schema is not None else self.source.infer_schema(self.table_name)
        self.plan.resolve(schema)
        return self.filter_columns()

    def filter_columns(self) -> bool:
        """Restrict the plan's columns; ready if any column is left."""
        schema = self.plan.schema or {}
        requested = self.plan.columns or list(schema)

        unknown = [c for c in requested if c not in schema]
        if unknown:
            self.logger.warning("Configured columns missing from source", columns=unknown)

        self.plan.columns = [
            c
            for c in requested
            if c in schema
            and c not in self.plan.exclude_columns
            and self.column_allowed(c)
        ]
        if not self.plan.columns:
            self.logger.info("No columns left to sync, skipping")
            return False
        return True

    def column_allowed(self, column: str) -> bool:
        """Per-strategy column rule. Every column passes by default."""
        return True

    def ensure_target_exists(self) -> None:
        """Create the target table from the plan unless it already exists."""
        self.target.ensure_connection()
        if not self.target.table_exists(self.plan.target_table):
            SchemaMaker.create_table(self.target, self.plan)

    # ------------------------------------------------------------------
    # Extract
    # ------------------------------------------------------------------
    def extract_to_file(self, since: datetime | None) -> tuple[StagingFile, Any | None]:
        """
        Stage every row newer than ``since`` into a fresh temp file.

        The maximum of the trusted watermark column is read across the
        whole table before any row is streamed, so the returned candidate is
        an upper bound that rows committed during the extract can't exceed.

        Returns:
            The staging file and the candidate ``last_row_at``
        """
        self.source.ensure_connection()

        column = trusted_watermark_column(self.plan.columns)
        last_row_at = None
        if column is not None:
            last_row_at = self.source.max_value(self.table_name, column)
            if isinstance(last_row_at, datetime):
                last_row_at = ensure_utc(last_row_at)

        staging = StagingFile.create(self.table_name, self.staging_dir)
        try:
            self.source.extract_incrementally_to_file(
                self.table_name,
                self.plan.columns,
                staging.path,
                since,
                0,
                watermark_column=column,
                batch_size=self.batch_size,
            )
        except Exception:
            staging.release()
            raise

        return staging, last_row_at

    def apply_staged(self, work: Callable[[StagingFile], int]) -> "LoadAction":
        """Load the staged file with ``work``, releasing it if the load fails."""
        self.target.ensure_connection()
        try:
            self.rows_loaded = self.measure("load", lambda: work(self.staging))
        except Exception:
            self.release_staging()
            raise
        self.loaded = True
        return self

    def release_staging(self) -> None:
        if self.staging is not None:
            self.staging.release()

    # ------------------------------------------------------------------
    # Instrumentation
    # ------------------------------------------------------------------
    def measure(self, stage: str, work: Callable[[], T]) -> T:
        """Time ``work`` under ``<operation>.<stage>.<table>``."""
        label = "%s.%s.%s" % (self.operation, stage, self.table_name)
        return self.logger.measure(label, work)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(table_name={self.table_name!r})"


__all__ = ["LoadAction", "NullAction", "DEFAULT_OVERLAP"]
