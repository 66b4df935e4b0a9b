"""Incremental load: upsert the rows that changed since the last sync."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from tablesync.core.exceptions import ConfigurationError
from tablesync.sync.actions import LoadAction
from tablesync.utils.helpers import WATERMARK_COLUMNS, trusted_watermark_column


class IncrementalLoadAction(LoadAction):
    """
    Load only the rows whose watermark column moved past the last sync.

    Each run re-fetches a trailing overlap window before ``last_synced_at``
    to pick up rows that became visible late or were stamped behind the
    previous cutoff. Rows are upserted by primary key, so re-fetched rows
    replace themselves instead of duplicating.

    A table must have been batch loaded once before it can be synced
    incrementally; until then it is skipped.
    """

    operation = "incremental"

    def prepare(self) -> bool:
        if not super().prepare():
            return False

        if trusted_watermark_column(self.plan.columns) is None:
            raise ConfigurationError(
                f"Incremental load of {self.table_name} needs one of "
                f"{', '.join(WATERMARK_COLUMNS)} among its columns",
                details={"columns": self.plan.columns},
            )

        self.watermark = self.registry.get(self.table_name)
        if self.watermark is None or self.watermark.last_synced_at is None:
            self.logger.info("No previous sync, batch load required first")
            return False
        return True

    def since(self) -> datetime | None:
        """Extraction cutoff: the previous sync time minus the overlap."""
        if self.watermark is None or self.watermark.last_synced_at is None:
            return None
        return self.watermark.last_synced_at - self.overlap

    def extract_data(self) -> "IncrementalLoadAction":
        self.started_at = self.now()
        since = self.since()

        self.logger.info(
            "Starting incremental extract",
            since=str(since),
            last_row_at=str(self.watermark.last_row_at) if self.watermark else None,
        )
        self.staging, self.candidate_last_row_at = self.measure(
            "extract", lambda: self.extract_to_file(since)
        )
        return self

    def load_data(self) -> "IncrementalLoadAction":
        return self.apply_staged(
            lambda staging: self.target.upsert_from_file(
                self.plan.target_table,
                self.plan.columns,
                staging.path,
                self.plan.primary_key,
            )
        )

    def watermark_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"last_synced_at": self.started_at}
        # An empty source table has no max; keep the stored last_row_at
        if self.candidate_last_row_at is not None:
            fields["last_row_at"] = self.candidate_last_row_at
        return fields
