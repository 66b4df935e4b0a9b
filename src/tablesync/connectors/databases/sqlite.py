"""SQLite database connector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import URL, Connection

from tablesync.connectors.base import ConnectorConfig
from tablesync.connectors.databases.sql import SQLConnector, upsert_on_conflict


@dataclass
class SQLiteConfig(ConnectorConfig):
    """SQLite configuration; ``path`` is used when no URL is given."""

    path: str = ":memory:"


class SQLiteConnector(SQLConnector):
    """SQLite connector; used in tests and for local dry runs."""

    connector_type = "sqlite"

    def _url_from_parts(self) -> URL | None:
        return URL.create("sqlite", database=getattr(self.config, "path", ":memory:"))

    def _engine_options(self) -> dict[str, Any]:
        # SQLite pools don't take size/overflow settings
        return {"pool_pre_ping": True}

    def _upsert(
        self,
        conn: Connection,
        table: sa.Table,
        rows: list[dict[str, Any]],
        key: list[str],
    ) -> None:
        upsert_on_conflict(conn, insert, table, rows, key)
