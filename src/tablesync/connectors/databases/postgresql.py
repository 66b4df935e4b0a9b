"""PostgreSQL database connector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import URL, Connection

from tablesync.connectors.base import ConnectorConfig
from tablesync.connectors.databases.sql import SQLConnector, upsert_on_conflict


@dataclass
class PostgreSQLConfig(ConnectorConfig):
    """Connection parts used when no ``url`` is given."""

    host: str = "localhost"
    port: int = 5432
    database: str = ""
    user: str = ""
    password: str = ""
    ssl_mode: str = "prefer"


class PostgreSQLConnector(SQLConnector):
    """PostgreSQL connector with ``INSERT ... ON CONFLICT`` upserts."""

    connector_type = "postgresql"

    def _url_from_parts(self) -> URL | None:
        config = self.config
        if not isinstance(config, PostgreSQLConfig):
            return None
        return URL.create(
            "postgresql+psycopg2",
            username=config.user or None,
            password=config.password or None,
            host=config.host,
            port=config.port,
            database=config.database or None,
            query={"sslmode": config.ssl_mode},
        )

    def _upsert(
        self,
        conn: Connection,
        table: sa.Table,
        rows: list[dict[str, Any]],
        key: list[str],
    ) -> None:
        upsert_on_conflict(conn, insert, table, rows, key)
