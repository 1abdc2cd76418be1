"""SQLModel data models."""

from gateway.models.activity import ActivityEvent, ActivityType
from gateway.models.api_key import ApiKey
from gateway.models.endpoint import (
    Endpoint,
    EndpointPatch,
    EndpointSpec,
    EndpointStatus,
    EndpointType,
    HttpMethod,
    ParameterDefinition,
)
from gateway.models.tag import EndpointTagLink, Tag

__all__ = [
    "ActivityEvent",
    "ActivityType",
    "ApiKey",
    "Endpoint",
    "EndpointPatch",
    "EndpointSpec",
    "EndpointStatus",
    "EndpointTagLink",
    "EndpointType",
    "HttpMethod",
    "ParameterDefinition",
    "Tag",
]
