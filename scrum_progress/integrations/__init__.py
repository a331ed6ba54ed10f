"""
Remote Scrum API access.

Provides an async, typed client for the Scrum tracking REST API and the
gateway protocol the services depend on.
"""

from .base import ApiClientConfig, BaseApiClient, RequestMetrics
from .gateway import ScrumGateway
from .scrum_api import ScrumApiClient, create_scrum_api_client

__all__ = [
    "ApiClientConfig",
    "BaseApiClient",
    "RequestMetrics",
    "ScrumGateway",
    "ScrumApiClient",
    "create_scrum_api_client",
]
