"""
Data connectors.

Modules:
    base: DataConnector contract implemented by every source adapter
    registry: Factory keyed by ConnectorType
    session: Per-workflow session ownership (acquire / release)
    sqlalchemy_connector: Generic async SQLAlchemy connector, registered
        for PostgreSQL-compatible sources

Usage:
    from connectors.registry import create_connector
    from connectors.session import SessionRegistry

    sessions = SessionRegistry()
    connector = await sessions.acquire(connection)
    try:
        tables = await connector.list_tables()
    finally:
        await sessions.release(connection.connection_id)
"""

# Importing registers the connector with the factory
from connectors import sqlalchemy_connector  # noqa: F401

__all__ = [
    "DataConnector",
    "SessionRegistry",
    "create_connector",
    "register_connector",
]
