"""Batch load: replace the whole target table every run."""

from __future__ import annotations

from typing import Any

from tablesync.sync.actions import LoadAction


class BatchLoadAction(LoadAction):
    """
    Dump the full source table and swap it into the target.

    The staged rows go into a shadow table which is renamed into place, so
    readers never see a partially loaded table. The run's start time becomes
    both ``last_synced_at`` and ``last_batch_synced_at``, which lets
    incremental runs continue from it.
    """

    operation = "batch"

    def prepare(self) -> bool:
        if not super().prepare():
            return False
        self.watermark = self.registry.get(self.table_name)
        return True

    def extract_data(self) -> "BatchLoadAction":
        self.started_at = self.now()

        previous = self.watermark.last_batch_synced_at if self.watermark else None
        self.logger.info(
            "Starting batch extract",
            last_batch_synced_at=str(previous) if previous else None,
            since_last_batch_seconds=(
                round((self.started_at - previous).total_seconds())
                if previous
                else None
            ),
        )
        self.staging, self.candidate_last_row_at = self.measure(
            "extract", lambda: self.extract_to_file(None)
        )
        return self

    def load_data(self) -> "BatchLoadAction":
        return self.apply_staged(
            lambda staging: self.target.replace_from_file(
                self.plan.target_table,
                self.plan,
                staging.path,
            )
        )

    def watermark_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "last_synced_at": self.started_at,
            "last_batch_synced_at": self.started_at,
        }
        if self.candidate_last_row_at is not None:
            fields["last_row_at"] = self.candidate_last_row_at
        return fields
