"""Database connectors for tablesync."""

from tablesync.connectors.databases.mysql import MySQLConfig, MySQLConnector
from tablesync.connectors.databases.postgresql import PostgreSQLConfig, PostgreSQLConnector
from tablesync.connectors.databases.sql import SQLConnector
from tablesync.connectors.databases.sqlite import SQLiteConfig, SQLiteConnector

__all__ = [
    "SQLConnector",
    "PostgreSQLConfig",
    "PostgreSQLConnector",
    "MySQLConfig",
    "MySQLConnector",
    "SQLiteConfig",
    "SQLiteConnector",
]
