"""Endpoint registry."""

from gateway.managers.endpoint.endpoint import EndpointManager, parse_status

__all__ = ["EndpointManager", "parse_status"]
