"""Tests for the batch load strategy."""

from __future__ import annotations

import os

import pytest
import sqlalchemy as sa

from conftest import RUN_STARTED_AT, fetch_rows, naive, order, utc

from tablesync.core.exceptions import ExtractionError
from tablesync.sync.batch import BatchLoadAction


@pytest.fixture
def batch(target, registry, make_plan, clock, staging_dir, timing_logger):
    """Factory for batch actions on the fixtures' databases."""

    def _make(table_name: str = "orders", **kwargs):
        return BatchLoadAction(
            target,
            make_plan(table_name, **kwargs),
            registry,
            timing_logger,
            now=clock,
            staging_dir=staging_dir,
        )

    return _make


class TestFullReplace:
    """Test replacing the target table."""

    def test_initial_load(self, create_source_table, batch, target):
        """The first batch copies every row."""
        create_source_table("orders", rows=[order(i, naive(9, i)) for i in range(1, 6)])

        action = batch()
        action()

        assert action.rows_loaded == 5
        rows = fetch_rows(target, "orders")
        assert [r["id"] for r in rows] == [1, 2, 3, 4, 5]
        assert rows[0]["updated_at"] == naive(9, 1)
        assert rows[0]["email"] == "buyer1@example.com"

    def test_deleted_source_rows_disappear(self, create_source_table, batch, target, source):
        """Rows deleted upstream are gone after the next batch."""
        create_source_table("orders", rows=[order(1, naive(9, 0)), order(2, naive(9, 1))])
        batch()()

        with source.engine.begin() as conn:
            conn.exec_driver_sql("DELETE FROM orders WHERE id = 1")
        batch()()

        assert [r["id"] for r in fetch_rows(target, "orders")] == [2]

    def test_no_leftover_shadow_tables(self, create_source_table, batch, target):
        """The swap leaves only the target table behind."""
        create_source_table("orders", rows=[order(1, naive(9, 0))])
        batch()()
        batch()()

        assert target.table_exists("orders")
        assert not target.table_exists("orders__load")
        assert not target.table_exists("orders__old")

    def test_prefixed_target(self, create_source_table, batch, target):
        """Rows land in the prefixed table."""
        create_source_table("orders", rows=[order(1, naive(9, 0))])

        batch(target_prefix="replica_")()

        assert target.row_count("replica_orders") == 1
        assert not target.table_exists("orders")

    def test_excluded_column(self, create_source_table, batch, target):
        """Excluded columns are neither created nor loaded."""
        create_source_table("orders", rows=[order(1, naive(9, 0))])

        batch(exclude_columns=["email"])()

        rows = fetch_rows(target, "orders")
        assert "email" not in rows[0]
        assert rows[0]["customer"] == "acme"

    def test_empty_source(self, create_source_table, batch, target, registry):
        """An empty source produces an empty target and no last_row_at."""
        create_source_table("orders")

        batch()()

        assert target.row_count("orders") == 0
        wm = registry.get("orders")
        assert wm.last_row_at is None
        assert wm.last_batch_synced_at == RUN_STARTED_AT

    def test_table_without_timestamps(self, create_source_table, batch, target, registry):
        """Batch loads don't need a watermark column."""
        create_source_table(
            "tags",
            rows=[{"id": 1, "customer": "a", "email": None, "amount": 3}],
            watermark=(),
        )

        batch("tags")()

        assert target.row_count("tags") == 1
        assert registry.get("tags").last_row_at is None


class TestBatchWatermark:
    """Test the fields a batch commits."""

    def test_watermark_fields(self, create_source_table, batch, registry):
        """Sync time and batch time are the run start; last_row_at is the max."""
        create_source_table("orders", rows=[order(1, naive(9, 0)), order(2, naive(9, 10))])

        batch()()

        wm = registry.get("orders")
        assert wm.last_synced_at == RUN_STARTED_AT
        assert wm.last_batch_synced_at == RUN_STARTED_AT
        assert wm.last_row_at == utc(9, 10)

    def test_extract_failure_releases_staging(self, create_source_table, batch, registry, source, monkeypatch):
        """A failing extract propagates, commits nothing and cleans up."""
        create_source_table("orders", rows=[order(1, naive(9, 0))])
        created = []

        def broken(table, columns, path, since, offset=0, **kwargs):
            created.append(path)
            raise ExtractionError("source gone", source=table)

        monkeypatch.setattr(source, "extract_incrementally_to_file", broken)

        with pytest.raises(ExtractionError):
            batch()()

        assert registry.get("orders") is None
        assert created and not os.path.exists(created[0])

    def test_full_extract_ignores_previous_sync(self, create_source_table, batch, registry, target):
        """A stored watermark does not narrow a batch extract."""
        create_source_table("orders", rows=[order(1, naive(7, 0)), order(2, naive(9, 10))])
        registry.ensure_storage_exists()
        registry.set("orders", last_synced_at=utc(9, 5), last_batch_synced_at=utc(6, 0))

        action = batch()
        action()

        assert action.rows_loaded == 2
        assert target.row_count("orders") == 2


class TestColumnTypes:
    """Test values that don't fit a CSV cell as-is."""

    def test_json_and_binary_columns(self, source, batch, target):
        """JSON documents and binary values arrive unchanged."""
        things = sa.Table(
            "things",
            sa.MetaData(),
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
            sa.Column("payload", sa.JSON),
            sa.Column("blob", sa.LargeBinary),
        )
        things.create(source.engine)
        with source.engine.begin() as conn:
            conn.execute(things.insert(), [
                {"id": 1, "payload": {"a": 1, "tags": ["x", "y"]}, "blob": b"\x00\x01ab"},
                {"id": 2, "payload": "plain", "blob": None},
            ])

        batch("things")()

        rows = fetch_rows(target, "things")
        assert rows[0]["payload"] == {"a": 1, "tags": ["x", "y"]}
        assert rows[0]["blob"] == b"\x00\x01ab"
        assert rows[1]["payload"] == "plain"
        assert rows[1]["blob"] is None
