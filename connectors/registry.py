"""
Connector factory keyed by ConnectorType
"""

from typing import Callable, Dict, List, Type
from models.base import ConnectorType
from schemas.connector import ConnectionConfig
from connectors.base import DataConnector
from core.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)

_REGISTRY: Dict[ConnectorType, Type[DataConnector]] = {}


def register_connector(*connector_types: ConnectorType) -> Callable[[Type[DataConnector]], Type[DataConnector]]:
    """Class decorator registering a connector for one or more types."""

    def decorator(cls: Type[DataConnector]) -> Type[DataConnector]:
        for connector_type in connector_types:
            if connector_type in _REGISTRY and _REGISTRY[connector_type] is not cls:
                logger.warning(
                    f"Replacing connector for {connector_type.value}: "
                    f"{_REGISTRY[connector_type].__name__} -> {cls.__name__}"
                )
            _REGISTRY[connector_type] = cls
        return cls

    return decorator


def available_connectors() -> List[ConnectorType]:
    return sorted(_REGISTRY, key=lambda t: t.value)


def create_connector(connection: ConnectionConfig) -> DataConnector:
    """
    Instantiate the connector registered for ``connection.connector_type``.

    Raises:
        ValidationError: Unknown type, or no connector registered for it
    """
    try:
        connector_type = ConnectorType(connection.connector_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown connector type: {connection.connector_type}",
            context={"connection_id": connection.connection_id},
            original_exception=e,
        )

    connector_cls = _REGISTRY.get(connector_type)
    if connector_cls is None:
        raise ValidationError(
            f"No connector registered for {connector_type.value}",
            context={
                "connection_id": connection.connection_id,
                "available": [t.value for t in available_connectors()],
            },
        )

    connector = connector_cls(connection.auth)
    # Subclasses registered for several types keep the requested one
    connector.connector_type = connector_type
    return connector
