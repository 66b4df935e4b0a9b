"""Base connector interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from tablesync.core.exceptions import ConnectionError
from tablesync.core.retry import RetryPolicy

if TYPE_CHECKING:
    from tablesync.sync.plan import TablePlan

logger = structlog.get_logger()


@dataclass
class ConnectorConfig:
    """Settings every connector understands; dialect configs extend it."""

    name: str
    url: str = ""
    schema: str | None = None
    batch_size: int = 10000
    timeout: int = 30
    pool_size: int = 5
    max_overflow: int = 10
    retry_attempts: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0


class DatabaseConnector(ABC):
    """
    Abstract base class for source and target databases.

    One class serves both sides of a sync: the source side answers schema and
    watermark questions and streams rows to a staging file, the target side
    applies a staging file by upsert or full replace.
    """

    connector_type: str = "database"

    def __init__(self, config: ConnectorConfig) -> None:
        self.config = config
        self.logger = logger.bind(
            connector=config.name,
            connector_type=self.connector_type,
        )
        self.retry_policy = RetryPolicy(
            max_attempts=config.retry_attempts,
            initial_delay=config.retry_delay,
            backoff_factor=config.retry_backoff,
        )
        self._connected = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test if the connection is valid."""
        pass

    def ensure_connection(self) -> None:
        """
        Make sure the connection is usable, reconnecting if it went stale.

        Long idle extraction sessions get dropped by servers and proxies, so
        a failed liveness check is followed by a reconnect under the
        connector's retry policy.
        """
        if self._connected and self.test_connection():
            return

        self.logger.info("Reconnecting", was_connected=self._connected)

        def reconnect() -> None:
            self.disconnect()
            self.connect()
            if not self.test_connection():
                raise ConnectionError(
                    "Connection check failed after reconnect",
                    connector_type=self.connector_type,
                )

        self.retry_policy.execute(reconnect, description="reconnect", log=self.logger)

    @property
    def is_connected(self) -> bool:
        """Check if connector is connected."""
        return self._connected

    def __enter__(self) -> "DatabaseConnector":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.disconnect()

    def _validate_connection(self) -> None:
        """Ensure connector is connected."""
        if not self._connected:
            raise ConnectionError(
                "Connector is not connected",
                connector_type=self.connector_type,
            )

    # ------------------------------------------------------------------
    # Source side
    # ------------------------------------------------------------------
    @abstractmethod
    def table_exists(self, table: str) -> bool:
        """Check whether a table exists."""
        pass

    @abstractmethod
    def infer_schema(self, table: str) -> dict[str, Any]:
        """Map each column of a table to its type."""
        pass

    @abstractmethod
    def max_value(self, table: str, column: str) -> Any | None:
        """Maximum value of a column across the whole table."""
        pass

    @abstractmethod
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
        """
        Stream rows newer than ``since`` into a staging file.

        Args:
            table: Source table name
            columns: Columns to extract, in order
            path: Staging file to write
            since: Only rows whose watermark column is greater than this;
                None extracts the whole table
            offset: Number of matching rows to skip
            watermark_column: Column compared against ``since``
            batch_size: Rows per streamed chunk

        Returns:
            Number of rows written
        """
        pass

    # ------------------------------------------------------------------
    # Target side
    # ------------------------------------------------------------------
    @abstractmethod
    def upsert_from_file(
        self,
        table: str,
        columns: list[str],
        path: str,
        key: list[str],
    ) -> int:
        """Insert or update every staged row keyed by ``key``."""
        pass

    @abstractmethod
    def replace_from_file(self, table: str, plan: "TablePlan", path: str) -> int:
        """Replace the whole contents of ``table`` with the staged rows."""
        pass

    @abstractmethod
    def row_count(self, table: str) -> int:
        """Get row count for a table."""
        pass

    @abstractmethod
    def drop_table(self, table: str) -> None:
        """Drop a table if it exists."""
        pass
