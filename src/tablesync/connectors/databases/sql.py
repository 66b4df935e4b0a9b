"""Generic SQLAlchemy database connector."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

import sqlalchemy as sa
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from tablesync.connectors.base import ConnectorConfig, DatabaseConnector
from tablesync.core.exceptions import (
    ConnectionError,
    ExtractionError,
    LoadError,
    SchemaError,
)
from tablesync.core.utils import to_naive_utc
from tablesync.sync.schema import SchemaMaker
from tablesync.sync.staging import StagingFile
from tablesync.utils.helpers import chunk_iterable, trusted_watermark_column

if TYPE_CHECKING:
    from tablesync.sync.plan import TablePlan


def _python_type(column: sa.Column) -> type | None:
    if isinstance(column.type, sa.JSON):
        return dict
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def upsert_on_conflict(
    conn: Connection,
    insert: Callable[[sa.Table], Any],
    table: sa.Table,
    rows: list[dict[str, Any]],
    key: list[str],
) -> None:
    """``INSERT ... ON CONFLICT`` for dialects that have it (PostgreSQL, SQLite)."""
    stmt = insert(table)
    updates = {c: stmt.excluded[c] for c in rows[0] if c not in key}
    if updates:
        stmt = stmt.on_conflict_do_update(index_elements=key, set_=updates)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=key)
    conn.execute(stmt, rows)


class SQLConnector(DatabaseConnector):
    """
    Database connector built on SQLAlchemy Core.

    Works against any dialect SQLAlchemy supports. Upserts fall back to
    delete-then-insert inside one transaction; dialect subclasses replace
    that with a native upsert statement.
    """

    connector_type = "sql"

    def __init__(self, config: ConnectorConfig) -> None:
        super().__init__(config)
        self._engine: Engine | None = None

    def _url_from_parts(self) -> URL | None:
        """Dialect subclasses assemble a URL from host, user and so on."""
        return None

    def _get_connection_string(self) -> str:
        """The configured URL, else one built from the dialect config."""
        if self.config.url:
            return self.config.url
        url = self._url_from_parts()
        if url is None:
            raise ConnectionError(
                "No database URL configured",
                connector_type=self.connector_type,
            )
        return url.render_as_string(hide_password=False)

    def _engine_options(self) -> dict[str, Any]:
        return {
            "pool_pre_ping": True,
            "pool_size": self.config.pool_size,
            "max_overflow": self.config.max_overflow,
            "pool_timeout": self.config.timeout,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Create the engine and check it can reach the database."""
        try:
            self._engine = create_engine(
                self._get_connection_string(),
                **self._engine_options(),
            )
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self._connected = True
            self.logger.info(
                "Connected",
                dialect=self._engine.dialect.name,
            )
        except SQLAlchemyError as e:
            raise ConnectionError(
                f"Failed to connect: {str(e)}",
                connector_type=self.connector_type,
                details={"connector": self.config.name},
            ) from e

    def disconnect(self) -> None:
        """Close the connection."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
        self._connected = False
        self.logger.info("Disconnected")

    def test_connection(self) -> bool:
        """Test if the connection is valid."""
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    @property
    def engine(self) -> Engine:
        self._validate_connection()
        return self._engine

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _reflect(self, table: str) -> sa.Table:
        return sa.Table(
            table,
            sa.MetaData(schema=self.config.schema),
            autoload_with=self.engine,
        )

    def _quote(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote(name)

    def _qualified(self, table: str) -> str:
        if self.config.schema:
            return f"{self._quote(self.config.schema)}.{self._quote(table)}"
        return self._quote(table)

    @staticmethod
    def _bind_since(column: sa.Column, since: datetime) -> datetime:
        """Match ``since`` to the column's timezone awareness."""
        if isinstance(column.type, sa.DateTime) and not column.type.timezone:
            return to_naive_utc(since)
        return since

    # ------------------------------------------------------------------
    # Source side
    # ------------------------------------------------------------------
    def table_exists(self, table: str) -> bool:
        """Check whether a table exists."""
        return sa.inspect(self.engine).has_table(table, schema=self.config.schema)

    def infer_schema(self, table: str) -> dict[str, Any]:
        """Map each column to its reflected SQLAlchemy type."""
        try:
            columns = sa.inspect(self.engine).get_columns(table, schema=self.config.schema)
        except (NoSuchTableError, SQLAlchemyError) as e:
            raise SchemaError(
                f"Failed to infer schema for {table}: {e}",
                table=table,
            ) from e
        if not columns:
            raise SchemaError(f"No columns found for {table}", table=table)
        return {column["name"]: column["type"] for column in columns}

    def max_value(self, table: str, column: str) -> Any | None:
        """Maximum value of a column across the whole table."""
        try:
            source = self._reflect(table)
            with self.engine.connect() as conn:
                return conn.execute(sa.select(sa.func.max(source.c[column]))).scalar()
        except (SQLAlchemyError, KeyError) as e:
            raise ExtractionError(
                f"Failed to read max({column}) from {table}: {e}",
                source=table,
            ) from e

    def extract_incrementally_to_file(
        self,
        table: str,
        columns: list[str],
        path: str,
        since: datetime | None,
        offset: int = 0,
        watermark_column: str | None = None,
        batch_size: int | None = None,
    ) -> int:
        """Stream rows newer than ``since`` into a staging file."""
        batch_size = batch_size or self.config.batch_size
        staging = StagingFile(path, table)

        try:
            source = self._reflect(table)
            columns = columns or list(source.c.keys())
            stmt = sa.select(*[source.c[c] for c in columns])

            if since is not None:
                watermark_column = watermark_column or trusted_watermark_column(source.c.keys())
                if watermark_column is None:
                    raise ExtractionError(
                        f"No watermark column to filter {table} by",
                        source=table,
                    )
                wm = source.c[watermark_column]
                stmt = stmt.where(wm > self._bind_since(wm, since)).order_by(wm)
            elif source.primary_key.columns:
                stmt = stmt.order_by(*source.primary_key.columns)

            if offset:
                stmt = stmt.offset(offset)
            else:
                staging.truncate()

            self.logger.info(
                "Extracting to file",
                table=table,
                since=str(since) if since else None,
                offset=offset,
            )

            json_columns = {c for c in columns if isinstance(source.c[c].type, sa.JSON)}
            with self.engine.connect() as conn:
                if self.engine.dialect.supports_server_side_cursors:
                    conn = conn.execution_options(stream_results=True)
                result = conn.execute(stmt)
                for partition in result.partitions(batch_size):
                    staging.write_rows(partition, columns, json_columns)

            staging.finish(columns)
        except (SQLAlchemyError, KeyError, OSError) as e:
            raise ExtractionError(
                f"Failed to extract {table}: {e}",
                source=table,
                details={"path": path},
            ) from e

        self.logger.info("Extracted rows", table=table, rows=staging.rows_written)
        return staging.rows_written

    # ------------------------------------------------------------------
    # Target side
    # ------------------------------------------------------------------
    def _read_staged(self, table: sa.Table, path: str) -> list[dict[str, Any]]:
        python_types = {c.name: _python_type(c) for c in table.columns}
        utc_columns = {c.name for c in table.columns if getattr(c.type, "timezone", False)}
        records = StagingFile(path, table.name).read_records(python_types, utc_columns)
        # Staged columns the target doesn't have are dropped
        return [{k: v for k, v in r.items() if k in table.c} for r in records]

    def _upsert(
        self,
        conn: Connection,
        table: sa.Table,
        rows: list[dict[str, Any]],
        key: list[str],
    ) -> None:
        """Delete rows sharing a key with the batch, then insert the batch."""
        if len(key) == 1:
            keys = [r[key[0]] for r in rows]
            condition = table.c[key[0]].in_(keys)
        else:
            keys = [tuple(r[k] for k in key) for r in rows]
            condition = sa.tuple_(*[table.c[k] for k in key]).in_(keys)
        conn.execute(table.delete().where(condition))
        conn.execute(table.insert(), rows)

    def upsert_from_file(
        self,
        table: str,
        columns: list[str],
        path: str,
        key: list[str],
    ) -> int:
        """Insert or update every staged row keyed by ``key``."""
        try:
            target = self._reflect(table)
            missing = [k for k in key if k not in target.c]
            if missing:
                raise LoadError(
                    f"Key columns {missing} missing from {table}",
                    target=table,
                )
            rows = self._read_staged(target, path)
            if not rows:
                return 0
            with self.engine.begin() as conn:
                for chunk in chunk_iterable(rows, self.config.batch_size):
                    self._upsert(conn, target, chunk, key)
        except SQLAlchemyError as e:
            raise LoadError(
                f"Failed to upsert into {table}: {e}",
                target=table,
            ) from e

        self.logger.info("Upserted rows", table=table, rows=len(rows))
        return len(rows)

    def _swap_tables(self, conn: Connection, table: str, shadow: str, existed: bool) -> None:
        old = f"{table}__old"
        if existed:
            conn.execute(text(f"DROP TABLE IF EXISTS {self._qualified(old)}"))
            conn.execute(
                text(f"ALTER TABLE {self._qualified(table)} RENAME TO {self._quote(old)}")
            )
        conn.execute(
            text(f"ALTER TABLE {self._qualified(shadow)} RENAME TO {self._quote(table)}")
        )
        if existed:
            conn.execute(text(f"DROP TABLE {self._qualified(old)}"))

    def replace_from_file(self, table: str, plan: "TablePlan", path: str) -> int:
        """
        Replace the contents of ``table`` with the staged rows.

        Rows are loaded into a shadow table first, which is then renamed
        into place so readers never see a half-loaded table.
        """
        shadow = f"{table}__load"
        try:
            self.drop_table(shadow)
            SchemaMaker.create_table(self, plan, table_name=shadow)
            target = self._reflect(shadow)
            rows = self._read_staged(target, path)

            with self.engine.begin() as conn:
                for chunk in chunk_iterable(rows, self.config.batch_size):
                    conn.execute(target.insert(), chunk)

            existed = self.table_exists(table)
            with self.engine.begin() as conn:
                self._swap_tables(conn, table, shadow, existed)
        except SQLAlchemyError as e:
            raise LoadError(
                f"Failed to replace {table}: {e}",
                target=table,
            ) from e

        self.logger.info("Replaced table", table=table, rows=len(rows))
        return len(rows)

    def row_count(self, table: str) -> int:
        """Get row count for a table."""
        source = self._reflect(table)
        with self.engine.connect() as conn:
            return conn.execute(sa.select(sa.func.count()).select_from(source)).scalar()

    def drop_table(self, table: str) -> None:
        """Drop a table if it exists."""
        if not self.table_exists(table):
            return
        with self.engine.begin() as conn:
            conn.execute(text(f"DROP TABLE {self._qualified(table)}"))

    def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute a non-select statement."""
        with self.engine.begin() as conn:
            result = conn.execute(text(query), params or {})
            return result.rowcount
