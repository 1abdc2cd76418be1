"""Invocation API.

Proxies a call onto an active endpoint's target. Authenticated with the
endpoint's own API key (``X-API-Key`` or ``Authorization: Bearer``), not
with management credentials.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Header, Request

from gateway.api.dependencies import CoordinatorDep, ProbeServiceDep
from gateway.api.schemas import CamelModel
from gateway.config import get_settings
from gateway.errors import (
    FieldViolation,
    ForbiddenError,
    MethodNotAllowedError,
    UnauthorizedError,
    ValidationError,
)
from gateway.executors.base import ParameterBinding
from gateway.models.endpoint import EndpointStatus

logger = structlog.get_logger()

router = APIRouter()

# Query string keys that are never endpoint parameters
_RESERVED_QUERY_KEYS = {"limit", "offset", "api_key", "token"}


class InvokeResponse(CamelModel):
    endpoint_id: str
    rows: list[dict[str, Any]]
    row_count: int
    duration_ms: float


def _extract_token(request: Request, x_api_key: str | None) -> str:
    if x_api_key:
        return x_api_key
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    raise UnauthorizedError("API key required")


async def _parameters(request: Request) -> list[ParameterBinding]:
    """Parameters from the JSON body, else from the query string.

    Body forms: ``{"parameters": [{"name": .., "value": ..}]}`` or
    ``{"parameters": {"name": value}}``.
    """
    body = await request.body()
    if body:
        try:
            payload = json.loads(body)
        except ValueError:
            raise ValidationError.for_field("body", "request body must be JSON")
        raw = payload.get("parameters", []) if isinstance(payload, dict) else None
        if isinstance(raw, dict):
            return [ParameterBinding(name=str(k), value=v) for k, v in raw.items()]
        if isinstance(raw, list) and all(isinstance(p, dict) for p in raw):
            return [ParameterBinding(name=str(p.get("name", "")), value=p.get("value")) for p in raw]
        raise ValidationError.for_field("parameters", "parameters must be a list or an object")

    return [
        ParameterBinding(name=k, value=v)
        for k, v in request.query_params.items()
        if k.lower() not in _RESERVED_QUERY_KEYS
    ]


def _int_query(request: Request, name: str, violations: list[FieldViolation]) -> int | None:
    raw = request.query_params.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        violations.append(FieldViolation(name, f"{name} must be an integer"))
        return None


@router.api_route(
    "/{ref}",
    methods=["GET", "POST", "PUT", "DELETE"],
    response_model=InvokeResponse,
)
async def invoke_endpoint(
    ref: str,
    request: Request,
    coordinator: CoordinatorDep,
    probe: ProbeServiceDep,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> InvokeResponse:
    """Invoke an endpoint by ID or custom path.

    401 without a valid live key, 403 if the key belongs to another
    endpoint or the endpoint is not active, 405 on a method mismatch.
    Usage is recorded only when the call succeeds.
    """
    api_key = await coordinator.keys.authenticate(_extract_token(request, x_api_key))
    endpoint = await coordinator.endpoints.get_by_ref(ref)

    if api_key.endpoint_id != endpoint.id:
        raise ForbiddenError("API key is not valid for this endpoint")
    if endpoint.status != EndpointStatus.ACTIVE:
        raise ForbiddenError(
            f"Endpoint is {endpoint.status.value}",
            endpoint_id=endpoint.id,
            status=endpoint.status.value,
        )
    if request.method != endpoint.method.value:
        raise MethodNotAllowedError(
            f"Endpoint expects {endpoint.method.value}",
            allowed=endpoint.method.value,
        )

    violations: list[FieldViolation] = []
    limit = _int_query(request, "limit", violations)
    offset = _int_query(request, "offset", violations)
    if violations:
        raise ValidationError("Invalid pagination", violations=violations)

    result = await probe.probe_endpoint(
        endpoint,
        await _parameters(request),
        limit=limit,
        offset=offset,
        default_limit=get_settings().probe.invoke_table_limit,
    )

    await coordinator.record_usage(api_key, actor=api_key.key_prefix)
    logger.info(
        "invoke.done",
        endpoint_id=endpoint.id,
        key_prefix=api_key.key_prefix,
        row_count=result.row_count,
    )
    return InvokeResponse(
        endpoint_id=endpoint.id,
        rows=result.rows,
        row_count=result.row_count,
        duration_ms=result.duration_ms,
    )
