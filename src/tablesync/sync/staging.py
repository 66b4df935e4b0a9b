"""Staging files that carry extracted rows from the extract to the load stage."""

from __future__ import annotations

import base64
import json
import os
import tempfile
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Collection, Iterable, Sequence

import polars as pl
import structlog

from tablesync.core.utils import to_naive_utc

logger = structlog.get_logger()

# Aware datetimes are staged as UTC wall time; readers re-attach UTC
DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S%.6f"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S%.6f"

_NATIVE_TYPES = (str, int, float, bool, date, time, Decimal)
_BINARY_TYPES = (bytes, bytearray, memoryview)


def encode_value(value: Any, as_json: bool = False) -> Any:
    """
    Turn a database value into something a CSV cell can carry.

    JSON columns are always serialized, so scalar documents survive too.
    Binary values are base64 text.
    """
    if value is None:
        return None
    if as_json:
        return json.dumps(value, default=str)
    if isinstance(value, datetime):
        return to_naive_utc(value) if value.tzinfo is not None else value
    if isinstance(value, _NATIVE_TYPES):
        return value
    if isinstance(value, _BINARY_TYPES):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _decoder(python_type: type | None) -> Callable[[str], Any] | None:
    if python_type is None:
        return None
    if issubclass(python_type, (dict, list)):
        return json.loads
    if issubclass(python_type, bytes):
        return base64.b64decode
    return None


def rows_to_frame(
    rows: Iterable[Sequence[Any]],
    columns: list[str],
    json_columns: Collection[str] = (),
) -> pl.DataFrame:
    """Build a frame from database rows, encoding values polars can't hold."""
    as_json = [c in json_columns for c in columns]
    data = [tuple(encode_value(v, j) for v, j in zip(row, as_json)) for row in rows]
    return pl.DataFrame(data, schema=columns, orient="row", infer_schema_length=None)


def _coerce_expr(column: str, python_type: type | None, utc: bool = False) -> pl.Expr:
    col = pl.col(column)
    if python_type is None:
        return col
    if issubclass(python_type, datetime):
        parsed = col.str.to_datetime(DATETIME_FORMAT, strict=False)
        return parsed.dt.replace_time_zone("UTC") if utc else parsed
    if issubclass(python_type, date):
        return col.str.to_date(DATE_FORMAT, strict=False)
    if issubclass(python_type, time):
        return col.str.to_time(TIME_FORMAT, strict=False)
    if issubclass(python_type, bool):
        return (
            pl.when(col.is_null())
            .then(None)
            .otherwise(col.str.to_lowercase().is_in(["true", "1"]))
            .alias(column)
        )
    if issubclass(python_type, int):
        return col.cast(pl.Int64, strict=False)
    if issubclass(python_type, float):
        return col.cast(pl.Float64, strict=False)
    return col


class StagingFile:
    """
    Temporary CSV file exclusively owned by one load action.

    The file is created world-readable/writable so a separate load process
    can consume it, and must be released by whoever owns the action.
    """

    def __init__(self, path: str, table_name: str) -> None:
        self.path = path
        self.table_name = table_name
        self.rows_written = 0
        self._header_written = os.path.exists(path) and os.path.getsize(path) > 0
        self._released = False

    @classmethod
    def create(cls, table_name: str, directory: str | None = None) -> "StagingFile":
        """Create a fresh, empty staging file named after the table."""
        if directory:
            Path(directory).mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            prefix=f"{table_name}_",
            suffix=".csv",
            dir=directory,
            delete=False,
        )
        handle.close()
        os.chmod(handle.name, 0o666)
        return cls(handle.name, table_name)

    @property
    def released(self) -> bool:
        return self._released

    def truncate(self) -> None:
        with open(self.path, "wb"):
            pass
        self._header_written = False
        self.rows_written = 0

    def write_frame(self, df: pl.DataFrame) -> int:
        """Append a frame; the header is written with the first frame only."""
        with open(self.path, "ab") as fh:
            df.write_csv(
                fh,
                include_header=not self._header_written,
                datetime_format=DATETIME_FORMAT,
                date_format=DATE_FORMAT,
                time_format=TIME_FORMAT,
            )
        self._header_written = True
        self.rows_written += len(df)
        return len(df)

    def write_rows(
        self,
        rows: Iterable[Sequence[Any]],
        columns: list[str],
        json_columns: Collection[str] = (),
    ) -> int:
        return self.write_frame(rows_to_frame(rows, columns, json_columns))

    def finish(self, columns: list[str]) -> None:
        """Make sure a header exists even when no rows matched."""
        if not self._header_written:
            self.write_frame(pl.DataFrame(schema={c: pl.String for c in columns}))

    def read_frame(self) -> pl.DataFrame:
        """Read the staged rows back with every column as a string."""
        if os.path.getsize(self.path) == 0:
            return pl.DataFrame()
        return pl.read_csv(self.path, infer_schema_length=0)

    def read_records(
        self,
        python_types: dict[str, type | None],
        utc_columns: Collection[str] = (),
    ) -> list[dict[str, Any]]:
        """
        Read staged rows as dicts, parsing each column back to the python
        type its target column expects.

        Datetimes in ``utc_columns`` come back aware in UTC. JSON documents
        and base64 binaries are decoded for ``dict``/``list`` and ``bytes``
        columns.
        """
        df = self.read_frame()
        if df.is_empty():
            return []
        exprs = [_coerce_expr(c, python_types.get(c), c in utc_columns) for c in df.columns]
        records = df.with_columns(exprs).to_dicts()

        decoders = {
            c: decode for c in df.columns if (decode := _decoder(python_types.get(c))) is not None
        }
        for record in records:
            for column, decode in decoders.items():
                if record[column] is not None:
                    record[column] = decode(record[column])
        return records

    def release(self) -> None:
        """Delete the file. Safe to call more than once."""
        if self._released:
            return
        Path(self.path).unlink(missing_ok=True)
        self._released = True
        logger.debug("Released staging file", table=self.table_name, path=self.path)

    def __enter__(self) -> "StagingFile":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()
