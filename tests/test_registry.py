"""Tests for watermark storage."""

from __future__ import annotations

import json

import pytest

from conftest import utc

from tablesync.core.exceptions import WatermarkError
from tablesync.sync.registry import (
    FileWatermarkRegistry,
    SQLWatermarkRegistry,
    Watermark,
)


@pytest.fixture(params=["sql", "file"])
def store(request, target, temp_dir):
    """Each watermark store, with storage created."""
    if request.param == "sql":
        registry = SQLWatermarkRegistry(target)
    else:
        registry = FileWatermarkRegistry(str(temp_dir / "state" / "watermarks.json"))
    registry.ensure_storage_exists()
    return registry


class TestWatermarkStore:
    """Behaviour shared by every store."""

    def test_unknown_table(self, store):
        """Tables never synced have no watermark."""
        assert store.get("orders") is None

    def test_set_and_get(self, store):
        """Stored fields come back as aware UTC datetimes."""
        store.set("orders", last_synced_at=utc(9, 20), last_row_at=utc(9, 10))

        wm = store.get("orders")
        assert wm.table_name == "orders"
        assert wm.last_synced_at == utc(9, 20)
        assert wm.last_row_at == utc(9, 10)
        assert wm.last_batch_synced_at is None
        assert wm.updated_at is not None

    def test_partial_update_keeps_other_fields(self, store):
        """Setting some fields leaves the rest alone."""
        store.set("orders", last_synced_at=utc(9, 0), last_row_at=utc(8, 55), last_batch_synced_at=utc(9, 0))
        store.set("orders", last_synced_at=utc(9, 30))

        wm = store.get("orders")
        assert wm.last_synced_at == utc(9, 30)
        assert wm.last_row_at == utc(8, 55)
        assert wm.last_batch_synced_at == utc(9, 0)

    def test_tables_are_independent(self, store):
        """Each table owns its own watermark."""
        store.set("orders", last_synced_at=utc(9, 0))
        store.set("customers", last_synced_at=utc(10, 0))

        assert store.get("orders").last_synced_at == utc(9, 0)
        assert [wm.table_name for wm in store.list_all()] == ["customers", "orders"]

    def test_unknown_field(self, store):
        """Only watermark fields can be written."""
        with pytest.raises(WatermarkError):
            store.set("orders", last_seen_id=5)

    def test_delete(self, store):
        """Deleting forgets the table."""
        store.set("orders", last_synced_at=utc(9, 0))

        assert store.delete("orders") is True
        assert store.delete("orders") is False
        assert store.get("orders") is None

    def test_ensure_storage_is_repeatable(self, store):
        """Creating storage again keeps existing watermarks."""
        store.set("orders", last_synced_at=utc(9, 0))
        store.ensure_storage_exists()

        assert store.get("orders").last_synced_at == utc(9, 0)


class TestSQLWatermarkRegistry:
    """Test the database-backed store."""

    def test_custom_table_name(self, target):
        """The watermark table name is configurable."""
        registry = SQLWatermarkRegistry(target, table_name="sync_state")
        registry.ensure_storage_exists()

        assert target.table_exists("sync_state")


class TestFileWatermarkRegistry:
    """Test the JSON file store."""

    def test_file_contents(self, temp_dir):
        """Watermarks are written as ISO strings."""
        path = temp_dir / "watermarks.json"
        registry = FileWatermarkRegistry(str(path))
        registry.ensure_storage_exists()
        registry.set("orders", last_synced_at=utc(9, 0))

        data = json.loads(path.read_text())
        assert data["orders"]["last_synced_at"] == "2024-01-01T09:00:00+00:00"

    def test_corrupt_file(self, temp_dir):
        """An unreadable file is a watermark error."""
        path = temp_dir / "watermarks.json"
        path.write_text("{not json")

        with pytest.raises(WatermarkError):
            FileWatermarkRegistry(str(path)).get("orders")


class TestWatermark:
    """Test the watermark record."""

    def test_from_dict_parses_strings(self):
        """ISO strings and naive datetimes become aware UTC values."""
        wm = Watermark.from_dict({
            "table_name": "orders",
            "last_synced_at": "2024-01-01T09:00:00Z",
            "last_row_at": utc(8, 0).replace(tzinfo=None),
        })

        assert wm.last_synced_at == utc(9, 0)
        assert wm.last_row_at == utc(8, 0)
        assert wm.last_batch_synced_at is None
