"""Tests for stage composition, the skipped variant and the prepare gate."""

from __future__ import annotations

import pytest

from conftest import RUN_STARTED_AT, fetch_rows, naive, order, utc

from tablesync.core.exceptions import SchemaError
from tablesync.sync.actions import LoadAction
from tablesync.sync.batch import BatchLoadAction
from tablesync.sync.incremental import IncrementalLoadAction
from tablesync.sync.pipeline import STAGES, NullAction, run_stages
from tablesync.sync.registry import SQLWatermarkRegistry


class RecordingAction:
    """Minimal action that records which stages ran."""

    skipped = False

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.calls: list[str] = []

    def do_prepare(self):
        self.calls.append("prepare")
        return self if self.ready else None

    def extract_data(self):
        self.calls.append("extract")
        return self

    def load_data(self):
        self.calls.append("load")
        return self

    def post_load(self):
        self.calls.append("post_load")
        return self


class TestStageFold:
    """Test folding actions through the stages."""

    def test_stage_order(self):
        """Stages are prepare, extract, load, post_load."""
        assert [stage.name for stage in STAGES] == ["prepare", "extract", "load", "post_load"]

    def test_fold_runs_every_stage_in_order(self):
        """A ready action goes through all four stages."""
        action = RecordingAction()

        final = run_stages(action)

        assert final is action
        assert action.calls == ["prepare", "extract", "load", "post_load"]

    def test_not_ready_becomes_null_action(self):
        """An action that is not ready is replaced by the skipped variant."""
        action = RecordingAction(ready=False)

        final = run_stages(action)

        assert isinstance(final, NullAction)
        assert final.skipped is True
        assert action.calls == ["prepare"]

    def test_decomposed_stages_match_fold(self):
        """Running the stages one by one is the same as the fold."""
        folded = RecordingAction()
        stepped = RecordingAction()

        run_stages(folded)
        current = stepped
        for stage in STAGES:
            current = stage.run(current)

        assert stepped.calls == folded.calls


class TestNullAction:
    """Test the skipped variant."""

    def test_every_stage_is_identity(self):
        """Each stage returns the same null action."""
        null = NullAction("orders")

        assert null.do_prepare() is null
        assert null.extract_data() is null
        assert null.load_data() is null
        assert null.post_load() is null

    def test_fold_over_null_action(self):
        """Folding a null action returns it unchanged."""
        null = NullAction("orders")

        assert run_stages(null) is null
        assert null() is null

    def test_stages_tolerate_null_action(self):
        """Every stage function accepts a null action."""
        null = NullAction()
        for stage in STAGES:
            assert stage.run(null) is null


class TestPrepareGate:
    """Test the readiness gate and target creation."""

    def test_missing_source_table_is_skipped(self, target, registry, make_plan, clock, staging_dir):
        """A dropped source table skips the run without touching the target."""
        action = BatchLoadAction(target, make_plan("orders"), registry, now=clock, staging_dir=staging_dir)

        final = action()

        assert isinstance(final, NullAction)
        assert not target.table_exists("orders")
        assert registry.get("orders") is None

    def test_missing_source_table_on_incremental(self, target, registry, make_plan, clock):
        """The incremental strategy skips a missing table too."""
        registry.ensure_storage_exists()
        registry.set("orders", last_synced_at=utc(9, 5))
        action = IncrementalLoadAction(target, make_plan("orders"), registry, now=clock)

        final = action()

        assert final.skipped
        assert registry.get("orders").last_synced_at == utc(9, 5)

    def test_prepare_creates_storage(self, target, make_plan, create_source_table):
        """The watermark table is created even when the table is skipped."""
        registry = SQLWatermarkRegistry(target, table_name="sync_state")
        action = BatchLoadAction(target, make_plan("missing"), registry)

        action()

        assert target.table_exists("sync_state")

    def test_prepare_resolves_plan(self, target, registry, make_plan, create_source_table):
        """Prepare attaches the schema and the prefixed name."""
        create_source_table("orders")
        plan = make_plan("orders", target_prefix="replica_")
        action = BatchLoadAction(target, plan, registry)

        assert action.do_prepare() is action
        assert plan.is_resolved
        assert plan.target_table == "replica_orders"
        assert set(plan.schema) == {"id", "customer", "email", "amount", "created_at", "updated_at"}
        assert target.table_exists("replica_orders")

    def test_existing_schema_is_kept(self, target, registry, make_plan, create_source_table, source):
        """A schema set on the plan is never replaced by inference."""
        create_source_table("orders")
        plan = make_plan("orders")
        plan.schema = {"id": "integer", "customer": "varchar"}
        action = BatchLoadAction(target, plan, registry)

        action.do_prepare()

        assert plan.schema == {"id": "integer", "customer": "varchar"}
        assert plan.columns == ["id", "customer"]

    def test_excluded_columns_are_filtered(self, target, registry, make_plan, create_source_table):
        """Excluded columns never reach the target table."""
        create_source_table("orders")
        plan = make_plan("orders", exclude_columns=["email"])
        BatchLoadAction(target, plan, registry).do_prepare()

        assert "email" not in plan.columns
        assert "email" not in target.infer_schema("orders")

    def test_no_columns_left_is_skipped(self, target, registry, make_plan, create_source_table):
        """A plan whose columns are all filtered out is not ready."""
        create_source_table("orders")
        plan = make_plan("orders", columns=["id"], exclude_columns=["id"])

        final = BatchLoadAction(target, plan, registry)()

        assert final.skipped
        assert not target.table_exists("orders")

    def test_strategy_column_rule(self, target, registry, make_plan, create_source_table):
        """Strategies can deny columns through ``column_allowed``."""

        class NoContactBatch(BatchLoadAction):
            def column_allowed(self, column):
                return column not in ("email", "customer")

        create_source_table("orders")
        plan = make_plan("orders")
        NoContactBatch(target, plan, registry).do_prepare()

        assert plan.columns == ["id", "amount", "created_at", "updated_at"]

    def test_schema_inference_failure_propagates(self, target, registry, make_plan, create_source_table, monkeypatch):
        """Schema inference failures are hard failures."""
        create_source_table("orders")
        plan = make_plan("orders")

        def broken(table):
            raise SchemaError("boom", table=table)

        monkeypatch.setattr(plan.source, "infer_schema", broken)

        with pytest.raises(SchemaError):
            BatchLoadAction(target, plan, registry)()


class TestDecomposedEquivalence:
    """Test that stepping through stages matches calling the action."""

    def test_same_target_and_watermark(self, temp_dir, source, create_source_table, make_plan, clock):
        """Both ways of running produce the same rows and watermark."""
        from conftest import make_connector

        create_source_table("orders", rows=[order(1, naive(9, 0)), order(2, naive(9, 10))])
        results = []
        for label, stepped in (("whole", False), ("stepped", True)):
            target = make_connector(temp_dir / f"{label}.db", label)
            registry = SQLWatermarkRegistry(target)
            action = BatchLoadAction(target, make_plan("orders"), registry, now=clock)
            if stepped:
                current = action
                for stage in LoadAction.stages():
                    current = stage.run(current)
            else:
                action()
            results.append((fetch_rows(target, "orders"), registry.get("orders")))
            target.disconnect()

        (whole_rows, whole_wm), (stepped_rows, stepped_wm) = results
        assert whole_rows == stepped_rows
        assert whole_wm.last_synced_at == stepped_wm.last_synced_at == RUN_STARTED_AT
        assert whole_wm.last_row_at == stepped_wm.last_row_at


class TestMeasure:
    """Test stage instrumentation."""

    def test_labels(self, target, registry, make_plan, create_source_table, timing_logger, clock):
        """Each stage is timed under operation.stage.table."""
        create_source_table("orders", rows=[order(1, naive(9, 0))])
        BatchLoadAction(target, make_plan("orders"), registry, timing_logger, now=clock)()

        assert {
            "batch.prepare.orders",
            "batch.extract.orders",
            "batch.load.orders",
            "batch.post_load.orders",
        } <= set(timing_logger.timings)

    def test_measure_returns_work_value(self, target, registry, make_plan, timing_logger):
        """Measuring does not change what the work returns."""
        action = BatchLoadAction(target, make_plan("orders"), registry, timing_logger)

        assert action.measure("custom", lambda: 42) == 42
        assert "batch.custom.orders" in timing_logger.timings

    def test_measure_reraises(self, target, registry, make_plan, timing_logger):
        """Failures inside measured work propagate after being timed."""
        action = IncrementalLoadAction(target, make_plan("orders"), registry, timing_logger)

        def fail():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            action.measure("extract", fail)
        assert "incremental.extract.orders" in timing_logger.timings
