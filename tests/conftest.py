"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import sqlalchemy as sa

from tablesync.connectors.base import ConnectorConfig
from tablesync.connectors.databases.sqlite import SQLiteConnector
from tablesync.sync.plan import TablePlan
from tablesync.sync.registry import SQLWatermarkRegistry
from tablesync.utils.logging import TimingLogger, get_logger

RUN_STARTED_AT = datetime(2024, 1, 1, 9, 20, tzinfo=timezone.utc)


def utc(hour: int, minute: int = 0) -> datetime:
    """An aware UTC instant on the test day."""
    return datetime(2024, 1, 1, hour, minute, tzinfo=timezone.utc)


def naive(hour: int, minute: int = 0) -> datetime:
    """The same instant as stored in a TIMESTAMP WITHOUT TIME ZONE column."""
    return datetime(2024, 1, 1, hour, minute)


def make_connector(path: Path, name: str) -> SQLiteConnector:
    connector = SQLiteConnector(
        ConnectorConfig(
            name=name,
            url=f"sqlite:///{path}",
            batch_size=2,
            retry_attempts=2,
            retry_delay=0.01,
        )
    )
    connector.connect()
    return connector


def fetch_rows(connector: SQLiteConnector, table: str) -> list[dict[str, Any]]:
    """All rows of a table, ordered by id."""
    reflected = sa.Table(table, sa.MetaData(), autoload_with=connector.engine)
    with connector.engine.connect() as conn:
        rows = conn.execute(sa.select(reflected).order_by(reflected.c.id)).mappings().all()
    return [dict(row) for row in rows]


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def staging_dir(temp_dir: Path) -> str:
    return str(temp_dir / "staging")


@pytest.fixture
def source(temp_dir: Path) -> SQLiteConnector:
    """File-backed SQLite source database."""
    connector = make_connector(temp_dir / "source.db", "source")
    yield connector
    connector.disconnect()


@pytest.fixture
def target(temp_dir: Path) -> SQLiteConnector:
    """File-backed SQLite target database."""
    connector = make_connector(temp_dir / "target.db", "target")
    yield connector
    connector.disconnect()


@pytest.fixture
def registry(target: SQLiteConnector) -> SQLWatermarkRegistry:
    return SQLWatermarkRegistry(target)


@pytest.fixture
def clock():
    """Clock frozen at the run start used throughout the tests."""
    return lambda: RUN_STARTED_AT


@pytest.fixture
def timing_logger() -> TimingLogger:
    return TimingLogger(get_logger("tests"))


@pytest.fixture
def create_source_table(source: SQLiteConnector):
    """
    Factory creating a table in the source database.

    ``watermark`` picks the timestamp columns the table gets: any of
    ``updated_at`` and ``created_at``.
    """

    def _create(
        name: str = "orders",
        rows: list[dict[str, Any]] | None = None,
        watermark: tuple[str, ...] = ("created_at", "updated_at"),
    ) -> sa.Table:
        columns = [
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
            sa.Column("customer", sa.String(50)),
            sa.Column("email", sa.String(100)),
            sa.Column("amount", sa.Integer),
        ]
        columns += [sa.Column(c, sa.DateTime) for c in watermark]
        table = sa.Table(name, sa.MetaData(), *columns)
        table.create(source.engine)
        if rows:
            insert_source_rows(source, table, rows)
        return table

    return _create


def insert_source_rows(
    source: SQLiteConnector,
    table: sa.Table,
    rows: list[dict[str, Any]],
) -> None:
    with source.engine.begin() as conn:
        conn.execute(table.insert(), rows)


def order(id: int, updated_at: datetime, customer: str = "acme", amount: int = 100) -> dict[str, Any]:
    """A source ``orders`` row."""
    return {
        "id": id,
        "customer": customer,
        "email": f"buyer{id}@example.com",
        "amount": amount,
        "created_at": naive(8, 0),
        "updated_at": updated_at,
    }


@pytest.fixture
def make_plan(source: SQLiteConnector):
    """Factory for plans against the source fixture."""

    def _make(table_name: str = "orders", **kwargs: Any) -> TablePlan:
        return TablePlan(table_name=table_name, source=source, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def setup_logging(caplog):
    """Configure logging for tests."""
    import logging
    caplog.set_level(logging.DEBUG)
    return caplog
