"""Custom exceptions for tablesync.

Everything raised on purpose derives from ``TableSyncError``. Errors tied to
one table's load derive from ``TableLoadError`` and carry the table name, so
a coordinator can report them per table and carry on with the others.
"""

from typing import Any


class TableSyncError(Exception):
    """Base exception for all tablesync errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TableSyncError):
    """Settings or a table plan can't work as configured."""


class ConnectionError(TableSyncError):
    """A database could not be reached."""

    def __init__(
        self,
        message: str,
        connector_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.connector_type = connector_type
        super().__init__(message, details)


class TableLoadError(TableSyncError):
    """A hard failure while syncing one table."""

    stage: str = "load"

    def __init__(
        self,
        message: str,
        table: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.table = table
        super().__init__(message, details)


class SchemaError(TableLoadError):
    """Schema inference or target DDL failed."""

    stage = "prepare"


class ExtractionError(TableLoadError):
    """Reading rows from the source failed."""

    stage = "extract"

    def __init__(
        self,
        message: str,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, table=source, details=details)

    @property
    def source(self) -> str | None:
        return self.table


class LoadError(TableLoadError):
    """Writing staged rows to the target failed."""

    def __init__(
        self,
        message: str,
        target: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, table=target, details=details)

    @property
    def target(self) -> str | None:
        return self.table


class WatermarkError(TableLoadError):
    """The watermark store could not be read or written."""

    stage = "post_load"


class RetryExhaustedError(TableSyncError):
    """Every retry attempt failed."""

    def __init__(
        self,
        message: str,
        attempts: int | None = None,
        last_error: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, details)
