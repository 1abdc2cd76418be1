"""Response models shared by several routers.

JSON bodies use camelCase; request models also accept snake_case names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gateway.models.api_key import ApiKey
from gateway.models.endpoint import Endpoint
from gateway.models.tag import Tag


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParameterDefinitionModel(CamelModel):
    name: str
    type: str = "string"
    required: bool = False
    default: Any = None
    description: str | None = None


class ParameterBindingModel(CamelModel):
    name: str
    value: Any = None


class TagResponse(CamelModel):
    id: str
    name: str
    color: str
    description: str | None
    created_at: datetime
    updated_at: datetime


class ApiKeyResponse(CamelModel):
    """Redacted key metadata. The plaintext token is never part of it."""

    id: str
    endpoint_id: str
    key_prefix: str
    is_active: bool
    is_deleted: bool
    usage_count: int
    last_used_at: datetime | None
    created_by: str
    created_at: datetime
    revoked_at: datetime | None


class IssuedKeyResponse(CamelModel):
    """Returned once, when a key is generated or rotated."""

    token: str
    api_key: ApiKeyResponse


class EndpointResponse(CamelModel):
    id: str
    name: str
    description: str | None
    type: str
    target: str
    method: str
    path: str | None
    url: str
    rate_limit: int
    status: str
    parameters: list[ParameterDefinitionModel]
    tags: list[TagResponse] = []
    has_api_key: bool = False
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime


class ProbeResponse(CamelModel):
    rows: list[dict[str, Any]]
    row_count: int
    duration_ms: float


def tag_to_response(tag: Tag) -> TagResponse:
    return TagResponse(
        id=tag.id,
        name=tag.name,
        color=tag.color,
        description=tag.description,
        created_at=tag.created_at,
        updated_at=tag.updated_at,
    )


def api_key_to_response(api_key: ApiKey) -> ApiKeyResponse:
    return ApiKeyResponse(
        id=api_key.id,
        endpoint_id=api_key.endpoint_id,
        key_prefix=api_key.key_prefix,
        is_active=api_key.is_active,
        is_deleted=api_key.is_deleted,
        usage_count=api_key.usage_count,
        last_used_at=api_key.last_used_at,
        created_by=api_key.created_by,
        created_at=api_key.created_at,
        revoked_at=api_key.revoked_at,
    )


def endpoint_to_response(
    endpoint: Endpoint,
    *,
    url: str,
    tags: list[Tag] | None = None,
    has_api_key: bool = False,
) -> EndpointResponse:
    return EndpointResponse(
        id=endpoint.id,
        name=endpoint.name,
        description=endpoint.description,
        type=endpoint.type.value,
        target=endpoint.target,
        method=endpoint.method.value,
        path=endpoint.path,
        url=url,
        rate_limit=endpoint.rate_limit,
        status=endpoint.status.value,
        parameters=[ParameterDefinitionModel(**p) for p in endpoint.parameters or []],
        tags=[tag_to_response(t) for t in tags or []],
        has_api_key=has_api_key,
        created_by=endpoint.created_by,
        updated_by=endpoint.updated_by,
        created_at=endpoint.created_at,
        updated_at=endpoint.updated_at,
    )
