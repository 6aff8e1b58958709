"""
Connector sessions owned by a single workflow instance
"""

from typing import Callable, Dict, Optional
from schemas.connector import ConnectionConfig
from connectors.base import DataConnector
from connectors.registry import create_connector
from core.exceptions import SourceConnectionError
import logging

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[ConnectionConfig], DataConnector]


class SessionRegistry:
    """
    Connector sessions of one workflow instance.

    There is no process-wide pool: every workflow acquires its own
    connector and releases it during finalization. ``release`` disconnects
    at most once per acquired session and never raises.
    """

    def __init__(self, connector_factory: Optional[ConnectorFactory] = None):
        self._factory = connector_factory or create_connector
        self._sessions: Dict[str, DataConnector] = {}

    async def acquire(self, connection: ConnectionConfig) -> DataConnector:
        """
        Test, then open a session for ``connection``.

        Raises:
            SourceConnectionError: The connection test failed
            ConnectorError: Raised by the connector while connecting
        """
        existing = self._sessions.get(connection.connection_id)
        if existing is not None and existing.is_connected():
            return existing

        connector = self._factory(connection)

        result = await connector.test_connection()
        if not result.success:
            raise SourceConnectionError(
                f"Connection test failed: {result.message}",
                context={
                    "connection_id": connection.connection_id,
                    "connector_type": connection.connector_type,
                },
            )

        await connector.connect()
        self._sessions[connection.connection_id] = connector
        logger.info(
            f"Connected to {connection.connector_type} source {connection.connection_id}"
            + (f" (version {result.server_version})" if result.server_version else "")
        )
        return connector

    def get(self, connection_id: str) -> Optional[DataConnector]:
        return self._sessions.get(connection_id)

    async def release(self, connection_id: str) -> None:
        """Disconnect and forget the session. Teardown errors are only logged."""
        connector = self._sessions.pop(connection_id, None)
        if connector is None:
            return
        try:
            await connector.disconnect()
            logger.info(f"Disconnected from source {connection_id}")
        except Exception as e:
            logger.warning(f"Disconnect from {connection_id} failed: {e}")

    async def release_all(self) -> None:
        for connection_id in list(self._sessions):
            await self.release(connection_id)

    def __len__(self) -> int:
        return len(self._sessions)
