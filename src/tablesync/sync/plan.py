"""Per-table transfer plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tablesync.utils.helpers import prefixed_name

if TYPE_CHECKING:
    from tablesync.connectors.base import DatabaseConnector


@dataclass
class TablePlan:
    """
    Describes how one table is transferred.

    ``schema`` and ``prefixed_table_name`` stay None until the prepare stage
    resolves them. The schema is attached at most once and is never partial.
    """

    table_name: str
    source: "DatabaseConnector"
    columns: list[str] = field(default_factory=list)
    exclude_columns: list[str] = field(default_factory=list)
    primary_key: list[str] = field(default_factory=lambda: ["id"])
    target_prefix: str = ""
    schema: dict[str, Any] | None = None
    prefixed_table_name: str | None = None

    def resolve(self, schema: dict[str, Any] | None = None) -> "TablePlan":
        """
        Attach the inferred schema (unless one is already set) and derive
        the prefixed target table name.
        """
        if self.schema is None:
            if schema is None:
                raise ValueError(f"No schema available for {self.table_name}")
            self.schema = dict(schema)
        self.prefixed_table_name = prefixed_name(self.target_prefix, self.table_name)
        return self

    @property
    def is_resolved(self) -> bool:
        return self.schema is not None and self.prefixed_table_name is not None

    @property
    def target_table(self) -> str:
        if self.prefixed_table_name is None:
            raise RuntimeError(f"Plan for {self.table_name} has not been prepared")
        return self.prefixed_table_name

    def column_schema(self) -> dict[str, Any]:
        """Schema restricted to the plan's columns, in column order."""
        if self.schema is None:
            return {}
        if not self.columns:
            return dict(self.schema)
        return {c: self.schema[c] for c in self.columns if c in self.schema}
