"""Target table DDL derived from a plan's inferred schema."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError

from tablesync.core.exceptions import SchemaError
from tablesync.utils.helpers import generate_id

if TYPE_CHECKING:
    from tablesync.connectors.databases.sql import SQLConnector
    from tablesync.sync.plan import TablePlan

logger = structlog.get_logger()

# information_schema style type names, for plans configured by hand
_TYPE_NAMES: dict[str, type[sa.types.TypeEngine]] = {
    "integer": sa.Integer,
    "int": sa.Integer,
    "bigint": sa.BigInteger,
    "smallint": sa.SmallInteger,
    "varchar": sa.String,
    "character varying": sa.String,
    "string": sa.String,
    "text": sa.Text,
    "boolean": sa.Boolean,
    "bool": sa.Boolean,
    "timestamp": sa.DateTime,
    "timestamp without time zone": sa.DateTime,
    "datetime": sa.DateTime,
    "date": sa.Date,
    "time": sa.Time,
    "numeric": sa.Numeric,
    "decimal": sa.Numeric,
    "float": sa.Float,
    "double precision": sa.Float,
    "real": sa.Float,
    "json": sa.JSON,
    "jsonb": sa.JSON,
    "bytea": sa.LargeBinary,
    "blob": sa.LargeBinary,
}


def generic_type(column_type: Any) -> sa.types.TypeEngine:
    """Turn a reflected or named column type into a portable SQLAlchemy type."""
    if isinstance(column_type, str):
        name = column_type.lower().strip()
        if name == "timestamp with time zone":
            return sa.DateTime(timezone=True)
        type_class = _TYPE_NAMES.get(name)
        if type_class is None:
            raise SchemaError(f"Unsupported column type: {column_type}")
        return type_class()
    if isinstance(column_type, type):
        column_type = column_type()
    try:
        return column_type.as_generic()
    except NotImplementedError:
        return column_type


class SchemaMaker:
    """Creates target tables for plans."""

    @staticmethod
    def build_table(
        plan: "TablePlan",
        metadata: sa.MetaData,
        table_name: str | None = None,
        dialect_name: str | None = None,
    ) -> sa.Table:
        """Build the SQLAlchemy table a plan describes (without creating it)."""
        column_schema = plan.column_schema()
        if not column_schema:
            raise SchemaError("Plan has no resolved columns", table=plan.table_name)

        columns = []
        for column_name, column_type in column_schema.items():
            sa_type = generic_type(column_type)
            # MySQL refuses VARCHAR without a length
            if (
                dialect_name == "mysql"
                and isinstance(sa_type, sa.String)
                and not isinstance(sa_type, sa.Text)
                and not sa_type.length
            ):
                sa_type = sa.Text()
            columns.append(sa.Column(column_name, sa_type, autoincrement=False))

        name = table_name or plan.target_table
        keys = [k for k in plan.primary_key if k in column_schema]
        constraints = []
        if keys:
            # Shadow tables get renamed into place, so constraint names must
            # not collide with the ones of the table being replaced.
            constraints.append(
                sa.PrimaryKeyConstraint(*keys, name=generate_id(f"pk_{name[:40]}"))
            )

        return sa.Table(name, metadata, *columns, *constraints)

    @classmethod
    def create_table(
        cls,
        target: "SQLConnector",
        plan: "TablePlan",
        table_name: str | None = None,
    ) -> bool:
        """
        Create the target table for a plan if it is missing.

        Returns:
            True if the table was created, False if it already existed
        """
        name = table_name or plan.target_table
        if target.table_exists(name):
            return False

        metadata = sa.MetaData(schema=target.config.schema)
        table = cls.build_table(
            plan, metadata, table_name=name, dialect_name=target.engine.dialect.name
        )
        try:
            table.create(target.engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise SchemaError(
                f"Failed to create table {name}: {e}",
                table=name,
            ) from e

        logger.info(
            "Created target table",
            component="schema_maker",
            table=name,
            columns=len(table.columns),
        )
        return True
