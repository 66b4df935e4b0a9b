"""Database connectors for tablesync."""

from tablesync.connectors.base import ConnectorConfig, DatabaseConnector
from tablesync.connectors.registry import ConnectorRegistry, create_connector

__all__ = [
    "ConnectorConfig",
    "DatabaseConnector",
    "ConnectorRegistry",
    "create_connector",
]
