"""Shared HTTP client."""

from gateway.services.http.client import (
    HTTPClientManager,
    get_http_client,
    http_client_manager,
)

__all__ = ["HTTPClientManager", "get_http_client", "http_client_manager"]
