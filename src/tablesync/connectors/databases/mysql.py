"""MySQL database connector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects.mysql import insert
from sqlalchemy.engine import URL, Connection

from tablesync.connectors.base import ConnectorConfig
from tablesync.connectors.databases.sql import SQLConnector


@dataclass
class MySQLConfig(ConnectorConfig):
    """Connection parts used when no ``url`` is given."""

    host: str = "localhost"
    port: int = 3306
    database: str = ""
    user: str = ""
    password: str = ""
    charset: str = "utf8mb4"


class MySQLConnector(SQLConnector):
    """MySQL connector with ``ON DUPLICATE KEY UPDATE`` upserts."""

    connector_type = "mysql"

    def _url_from_parts(self) -> URL | None:
        config = self.config
        if not isinstance(config, MySQLConfig):
            return None
        return URL.create(
            "mysql+pymysql",
            username=config.user or None,
            password=config.password or None,
            host=config.host,
            port=config.port,
            database=config.database or None,
            query={"charset": config.charset},
        )

    def _upsert(
        self,
        conn: Connection,
        table: sa.Table,
        rows: list[dict[str, Any]],
        key: list[str],
    ) -> None:
        stmt = insert(table)
        updates = {c: stmt.inserted[c] for c in rows[0] if c not in key}
        if not updates:
            # MySQL has no DO NOTHING; a self-assignment of the key is a no-op
            updates = {key[0]: table.c[key[0]]}
        conn.execute(stmt.on_duplicate_key_update(updates), rows)

    def _swap_tables(self, conn: Connection, table: str, shadow: str, existed: bool) -> None:
        # RENAME TABLE swaps several tables atomically; ALTER TABLE commits per statement
        if not existed:
            conn.execute(
                text(f"RENAME TABLE {self._qualified(shadow)} TO {self._qualified(table)}")
            )
            return
        old = f"{table}__old"
        conn.execute(text(f"DROP TABLE IF EXISTS {self._qualified(old)}"))
        conn.execute(
            text(
                f"RENAME TABLE {self._qualified(table)} TO {self._qualified(old)}, "
                f"{self._qualified(shadow)} TO {self._qualified(table)}"
            )
        )
        conn.execute(text(f"DROP TABLE {self._qualified(old)}"))
