"""Pick a connector class from a database URL."""

from __future__ import annotations

from typing import Any, Type

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from tablesync.connectors.base import ConnectorConfig, DatabaseConnector
from tablesync.connectors.databases.mysql import MySQLConnector
from tablesync.connectors.databases.postgresql import PostgreSQLConnector
from tablesync.connectors.databases.sql import SQLConnector
from tablesync.connectors.databases.sqlite import SQLiteConnector
from tablesync.core.exceptions import ConfigurationError


class ConnectorRegistry:
    """SQLAlchemy backend names mapped to connector classes."""

    _connectors: dict[str, Type[DatabaseConnector]] = {
        "postgresql": PostgreSQLConnector,
        "postgres": PostgreSQLConnector,
        "mysql": MySQLConnector,
        "mariadb": MySQLConnector,
        "sqlite": SQLiteConnector,
    }

    @classmethod
    def register(cls, name: str, connector_class: Type[DatabaseConnector]) -> None:
        cls._connectors[name.lower()] = connector_class

    @classmethod
    def get(cls, name: str) -> Type[DatabaseConnector] | None:
        return cls._connectors.get(name.lower())

    @classmethod
    def list_connectors(cls) -> list[str]:
        return sorted(cls._connectors)

    @classmethod
    def create(cls, name: str, config: ConnectorConfig) -> DatabaseConnector:
        """Instantiate the connector registered under ``name``."""
        connector_class = cls.get(name)
        if connector_class is None:
            raise ConfigurationError(f"Unknown connector: {name}")
        return connector_class(config)


def create_connector(
    url: str,
    name: str | None = None,
    **config_kwargs: Any,
) -> DatabaseConnector:
    """
    Create an unconnected connector for a SQLAlchemy URL.

    The backend part of the URL scheme (``postgresql`` in
    ``postgresql+psycopg2://...``) selects the connector class; unknown
    backends get the generic SQLAlchemy connector.

    Args:
        url: SQLAlchemy database URL
        name: Connector name used in logs
        **config_kwargs: Extra ConnectorConfig fields
    """
    try:
        backend = make_url(url).get_backend_name()
    except ArgumentError as e:
        raise ConfigurationError(f"Invalid database URL: {e}") from e

    config = ConnectorConfig(name=name or backend, url=url, **config_kwargs)
    return (ConnectorRegistry.get(backend) or SQLConnector)(config)
