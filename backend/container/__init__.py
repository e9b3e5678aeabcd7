"""
Container Module
容器模块

HTTP gateway to the remote container service that runs generated apps.
"""

from .gateway import (
    ContainerGateway,
    ContainerGatewayError,
    ContainerCreationError,
    get_container_gateway,
    close_container_gateway,
)
from .models import (
    CommandResult,
    CONTAINER_CREATED_MESSAGE,
    CONTAINER_STARTED_MESSAGE,
    PREVIEW_URL_MESSAGE,
)

__all__ = [
    "ContainerGateway",
    "ContainerGatewayError",
    "ContainerCreationError",
    "get_container_gateway",
    "close_container_gateway",
    "CommandResult",
    "CONTAINER_CREATED_MESSAGE",
    "CONTAINER_STARTED_MESSAGE",
    "PREVIEW_URL_MESSAGE",
]
