"""Watermark registry: durable per-table sync progress."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError

from tablesync.core.exceptions import WatermarkError
from tablesync.core.utils import ensure_utc, parse_iso, utc_now

if TYPE_CHECKING:
    from tablesync.connectors.databases.sql import SQLConnector

logger = structlog.get_logger()

WATERMARK_FIELDS = ("last_synced_at", "last_row_at", "last_batch_synced_at")


@dataclass
class Watermark:
    """Sync progress of one table."""

    table_name: str
    last_synced_at: datetime | None = None
    last_row_at: datetime | None = None
    last_batch_synced_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            f.name: (
                getattr(self, f.name).isoformat()
                if isinstance(getattr(self, f.name), datetime)
                else getattr(self, f.name)
            )
            for f in fields(self)
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Watermark":
        """Create from dictionary."""
        values: dict[str, Any] = {"table_name": data["table_name"]}
        for name in (*WATERMARK_FIELDS, "updated_at"):
            value = data.get(name)
            if isinstance(value, str):
                value = parse_iso(value)
            elif isinstance(value, datetime):
                value = ensure_utc(value)
            values[name] = value
        return cls(**values)


def _validate_fields(table: str, values: dict[str, Any]) -> dict[str, Any]:
    unknown = set(values) - set(WATERMARK_FIELDS)
    if unknown:
        raise WatermarkError(
            f"Unknown watermark fields: {sorted(unknown)}",
            table=table,
        )
    return {
        k: ensure_utc(v) if isinstance(v, datetime) else v
        for k, v in values.items()
    }


class WatermarkRegistry(ABC):
    """Storage for per-table watermarks."""

    @abstractmethod
    def ensure_storage_exists(self) -> None:
        """Create the backing storage if missing. Safe to call every run."""
        pass

    @abstractmethod
    def get(self, table: str) -> Watermark | None:
        """Get the watermark for a table, None if it was never synced."""
        pass

    @abstractmethod
    def set(self, table: str, **values: Any) -> Watermark:
        """Insert or update watermark fields of a table."""
        pass

    @abstractmethod
    def delete(self, table: str) -> bool:
        """Forget a table's watermark. Returns False if there was none."""
        pass

    @abstractmethod
    def list_all(self) -> list[Watermark]:
        """All stored watermarks."""
        pass


class SQLWatermarkRegistry(WatermarkRegistry):
    """
    Watermarks kept in a table of the target database.

    Each table owns one row, so actions for different tables never update
    the same row.
    """

    def __init__(self, connector: "SQLConnector", table_name: str = "meta_last_sync_times") -> None:
        self.connector = connector
        self.table_name = table_name
        self.logger = logger.bind(component="watermark_registry", storage="sql")
        self._table = sa.Table(
            table_name,
            sa.MetaData(schema=connector.config.schema),
            sa.Column("table_name", sa.String(255), primary_key=True),
            sa.Column("last_synced_at", sa.DateTime(timezone=True)),
            sa.Column("last_row_at", sa.DateTime(timezone=True)),
            sa.Column("last_batch_synced_at", sa.DateTime(timezone=True)),
            sa.Column("updated_at", sa.DateTime(timezone=True)),
        )

    def ensure_storage_exists(self) -> None:
        try:
            self._table.create(self.connector.engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise WatermarkError(f"Failed to create {self.table_name}: {e}") from e

    def get(self, table: str) -> Watermark | None:
        try:
            with self.connector.engine.connect() as conn:
                row = conn.execute(
                    sa.select(self._table).where(self._table.c.table_name == table)
                ).mappings().first()
        except SQLAlchemyError as e:
            raise WatermarkError(f"Failed to read watermark: {e}", table=table) from e
        return Watermark.from_dict(dict(row)) if row else None

    def set(self, table: str, **values: Any) -> Watermark:
        values = _validate_fields(table, values)
        values["updated_at"] = utc_now()
        try:
            with self.connector.engine.begin() as conn:
                result = conn.execute(
                    self._table.update()
                    .where(self._table.c.table_name == table)
                    .values(**values)
                )
                if result.rowcount == 0:
                    conn.execute(self._table.insert().values(table_name=table, **values))
        except SQLAlchemyError as e:
            raise WatermarkError(f"Failed to write watermark: {e}", table=table) from e

        self.logger.info(
            "Updated watermark",
            table=table,
            **{k: str(v) for k, v in values.items() if k in WATERMARK_FIELDS},
        )
        return self.get(table)

    def delete(self, table: str) -> bool:
        try:
            with self.connector.engine.begin() as conn:
                result = conn.execute(
                    self._table.delete().where(self._table.c.table_name == table)
                )
        except SQLAlchemyError as e:
            raise WatermarkError(f"Failed to delete watermark: {e}", table=table) from e
        return result.rowcount > 0

    def list_all(self) -> list[Watermark]:
        with self.connector.engine.connect() as conn:
            rows = conn.execute(
                sa.select(self._table).order_by(self._table.c.table_name)
            ).mappings().all()
        return [Watermark.from_dict(dict(row)) for row in rows]


class FileWatermarkRegistry(WatermarkRegistry):
    """Watermarks kept in a local JSON file, for single-host setups and tests."""

    def __init__(self, path: str = ".tablesync/watermarks.json") -> None:
        self.path = Path(path)
        self.logger = logger.bind(component="watermark_registry", storage="file")

    def ensure_storage_exists(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._save({})

    def _load(self) -> dict[str, Watermark]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise WatermarkError(f"Failed to load watermarks from {self.path}: {e}") from e
        return {key: Watermark.from_dict(wm) for key, wm in data.items()}

    def _save(self, watermarks: dict[str, Watermark]) -> None:
        data = {key: wm.to_dict() for key, wm in watermarks.items()}
        tmp_path = self.path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as e:
            raise WatermarkError(f"Failed to save watermarks to {self.path}: {e}") from e

    def get(self, table: str) -> Watermark | None:
        return self._load().get(table)

    def set(self, table: str, **values: Any) -> Watermark:
        values = _validate_fields(table, values)
        watermarks = self._load()
        current = watermarks.get(table) or Watermark(table_name=table)
        for key, value in values.items():
            setattr(current, key, value)
        current.updated_at = utc_now()
        watermarks[table] = current
        self._save(watermarks)

        self.logger.info(
            "Updated watermark",
            table=table,
            **{k: str(v) for k, v in values.items()},
        )
        return current

    def delete(self, table: str) -> bool:
        watermarks = self._load()
        if table not in watermarks:
            return False
        del watermarks[table]
        self._save(watermarks)
        return True

    def list_all(self) -> list[Watermark]:
        return sorted(self._load().values(), key=lambda wm: wm.table_name)
