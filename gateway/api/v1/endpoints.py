"""Endpoints API.

Endpoint CRUD, status changes, the endpoint's API key, its tags and test
invocations. Every mutation requires the admin role.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from gateway.api.dependencies import (
    AdminDep,
    AuthDep,
    CoordinatorDep,
    ProbeServiceDep,
)
from gateway.api.schemas import (
    ApiKeyResponse,
    CamelModel,
    EndpointResponse,
    IssuedKeyResponse,
    ParameterBindingModel,
    ParameterDefinitionModel,
    ProbeResponse,
    TagResponse,
    api_key_to_response,
    endpoint_to_response,
    tag_to_response,
)
from gateway.errors import ValidationError
from gateway.executors.base import ParameterBinding
from gateway.managers.endpoint import parse_status
from gateway.managers.lifecycle import LifecycleCoordinator
from gateway.models.endpoint import (
    Endpoint,
    EndpointPatch,
    EndpointSpec,
    EndpointStatus,
    ParameterDefinition,
)

router = APIRouter()


# Request/Response Models


class CreateEndpointRequest(CamelModel):
    """Request to create an endpoint, optionally with key, status and tags."""

    name: str | None = None
    type: str | None = None
    target: str | None = None
    method: str | None = "GET"
    path: str | None = None
    description: str | None = None
    rate_limit: int | None = None
    parameters: list[ParameterDefinitionModel] = []
    status: str | None = None
    generate_api_key: bool = False
    tag_ids: list[str] = []


class UpdateEndpointRequest(CamelModel):
    """Partial update. Omitted fields are left alone; null clears optional ones."""

    name: str | None = None
    type: str | None = None
    target: str | None = None
    method: str | None = None
    path: str | None = None
    description: str | None = None
    rate_limit: int | None = None
    parameters: list[ParameterDefinitionModel] | None = None
    status: str | None = None


class StatusRequest(CamelModel):
    """Status change. ``isActive`` is accepted for older clients."""

    status: str | None = None
    is_active: bool | None = None


class StepWarningModel(CamelModel):
    step: str
    code: str
    message: str


class CreateEndpointResponse(CamelModel):
    endpoint: EndpointResponse
    token: str | None = None
    api_key: ApiKeyResponse | None = None
    warnings: list[StepWarningModel] = []


class EndpointListResponse(CamelModel):
    items: list[EndpointResponse]
    total: int


class DeleteResponse(CamelModel):
    id: str
    deleted: bool = True


class SetTagsRequest(CamelModel):
    tag_ids: list[str] = []


class EndpointTestRequest(CamelModel):
    parameters: list[ParameterBindingModel] = []
    limit: int | None = None
    offset: int | None = None


def _definitions(params: list[ParameterDefinitionModel]) -> list[ParameterDefinition]:
    return [ParameterDefinition(**p.model_dump()) for p in params]


async def _endpoint_to_response(
    coordinator: LifecycleCoordinator,
    endpoint: Endpoint,
) -> EndpointResponse:
    return endpoint_to_response(
        endpoint,
        url=coordinator.endpoints.url_for(endpoint),
        tags=await coordinator.tags.tags_for_endpoint(endpoint.id),
        has_api_key=await coordinator.endpoints.has_live_key(endpoint.id),
    )


# Endpoints


@router.post("", response_model=CreateEndpointResponse, status_code=201)
async def create_endpoint(
    request: CreateEndpointRequest,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> CreateEndpointResponse:
    """Create an endpoint in draft status.

    With ``generateApiKey`` a key is generated and its token returned once.
    A requested ``status`` is applied afterwards. Failures of those later
    steps are reported in ``warnings``; the endpoint itself still exists.
    """
    spec = EndpointSpec(
        name=request.name,
        type=request.type,
        target=request.target,
        method=request.method,
        path=request.path,
        description=request.description,
        rate_limit=request.rate_limit,
        parameters=_definitions(request.parameters),
    )
    result = await coordinator.create_endpoint(
        spec,
        actor=principal.name,
        generate_key=request.generate_api_key,
        status=request.status,
        tag_ids=request.tag_ids,
    )

    return CreateEndpointResponse(
        endpoint=await _endpoint_to_response(coordinator, result.endpoint),
        token=result.token,
        api_key=api_key_to_response(result.api_key) if result.api_key else None,
        warnings=[
            StepWarningModel(step=w.step, code=w.code, message=w.message)
            for w in result.warnings
        ],
    )


@router.get("", response_model=EndpointListResponse)
async def list_endpoints(
    coordinator: CoordinatorDep,
    _principal: AuthDep,
    status: str | None = Query(None),
    tag_id: str | None = Query(None, alias="tagId"),
    search: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> EndpointListResponse:
    """List endpoints, newest first."""
    endpoints, total = await coordinator.endpoints.list(
        status=parse_status(status) if status else None,
        tag_id=tag_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    ids = [e.id for e in endpoints]
    tags = await coordinator.tags.tags_for_endpoints(ids)
    keyed = await coordinator.keys.live_endpoint_ids(ids)

    return EndpointListResponse(
        items=[
            endpoint_to_response(
                e,
                url=coordinator.endpoints.url_for(e),
                tags=tags[e.id],
                has_api_key=e.id in keyed,
            )
            for e in endpoints
        ],
        total=total,
    )


@router.get("/{endpoint_id}", response_model=EndpointResponse)
async def get_endpoint(
    endpoint_id: str,
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> EndpointResponse:
    endpoint = await coordinator.endpoints.get(endpoint_id)
    return await _endpoint_to_response(coordinator, endpoint)


@router.put("/{endpoint_id}", response_model=EndpointResponse)
async def update_endpoint(
    endpoint_id: str,
    request: UpdateEndpointRequest,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> EndpointResponse:
    """Update endpoint fields. A ``status`` is checked before anything is applied."""
    fields: dict[str, Any] = {name: getattr(request, name) for name in request.model_fields_set}
    if fields.get("parameters") is not None:
        fields["parameters"] = _definitions(request.parameters)

    endpoint = await coordinator.update_endpoint(
        endpoint_id,
        EndpointPatch(**fields),
        actor=principal.name,
    )
    return await _endpoint_to_response(coordinator, endpoint)


@router.patch("/{endpoint_id}/status", response_model=EndpointResponse)
async def set_endpoint_status(
    endpoint_id: str,
    request: StatusRequest,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> EndpointResponse:
    """Move an endpoint to draft, active or suspended.

    Activation requires a live API key (409 precondition_failed otherwise).
    """
    if request.status is not None:
        status = parse_status(request.status)
    elif request.is_active is not None:
        status = EndpointStatus.ACTIVE if request.is_active else EndpointStatus.SUSPENDED
    else:
        raise ValidationError.for_field("status", "status is required")

    endpoint = await coordinator.set_status(endpoint_id, status, actor=principal.name)
    return await _endpoint_to_response(coordinator, endpoint)


@router.delete("/{endpoint_id}", response_model=DeleteResponse)
async def delete_endpoint(
    endpoint_id: str,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> DeleteResponse:
    """Delete an endpoint, revoking and deleting its keys and detaching its tags."""
    await coordinator.delete_endpoint(endpoint_id, actor=principal.name)
    return DeleteResponse(id=endpoint_id)


# API key of an endpoint


@router.post("/{endpoint_id}/api_key", response_model=IssuedKeyResponse, status_code=201)
async def generate_api_key(
    endpoint_id: str,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> IssuedKeyResponse:
    """Generate the endpoint's API key. 409 if a live key already exists.

    The token is only ever returned by this call (and by rotate).
    """
    issued = await coordinator.generate_key(endpoint_id, actor=principal.name)
    return IssuedKeyResponse(token=issued.token, api_key=api_key_to_response(issued.api_key))


@router.post(
    "/{endpoint_id}/api_key/rotate",
    response_model=IssuedKeyResponse,
    status_code=201,
)
async def rotate_api_key(
    endpoint_id: str,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> IssuedKeyResponse:
    """Revoke the current key (if any) and issue a new one. Status is unchanged."""
    issued = await coordinator.replace_key(endpoint_id, actor=principal.name)
    return IssuedKeyResponse(token=issued.token, api_key=api_key_to_response(issued.api_key))


@router.get("/{endpoint_id}/api_key", response_model=ApiKeyResponse)
async def get_api_key(
    endpoint_id: str,
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> ApiKeyResponse:
    """Metadata of the endpoint's current key (never the token)."""
    await coordinator.endpoints.get(endpoint_id)
    api_key = await coordinator.keys.get_current(endpoint_id)
    return api_key_to_response(api_key)


# Tags of an endpoint


@router.get("/{endpoint_id}/tags", response_model=list[TagResponse])
async def get_endpoint_tags(
    endpoint_id: str,
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> list[TagResponse]:
    await coordinator.endpoints.get(endpoint_id)
    tags = await coordinator.tags.tags_for_endpoint(endpoint_id)
    return [tag_to_response(t) for t in tags]


@router.api_route(
    "/{endpoint_id}/tags",
    methods=["POST", "PUT"],
    response_model=EndpointResponse,
)
async def set_endpoint_tags(
    endpoint_id: str,
    request: SetTagsRequest,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> EndpointResponse:
    """Replace the endpoint's tag set."""
    await coordinator.set_endpoint_tags(endpoint_id, request.tag_ids, actor=principal.name)
    endpoint = await coordinator.endpoints.get(endpoint_id)
    return await _endpoint_to_response(coordinator, endpoint)


# Test invocation


@router.post("/{endpoint_id}/test", response_model=ProbeResponse)
async def run_endpoint_test(
    endpoint_id: str,
    request: EndpointTestRequest,
    coordinator: CoordinatorDep,
    probe: ProbeServiceDep,
    _principal: AdminDep,
) -> ProbeResponse:
    """Run the endpoint's target with the given parameters. Nothing is persisted."""
    endpoint = await coordinator.endpoints.get(endpoint_id)
    result = await probe.probe_endpoint(
        endpoint,
        [ParameterBinding(name=p.name, value=p.value) for p in request.parameters],
        limit=request.limit,
        offset=request.offset,
    )
    return ProbeResponse(
        rows=result.rows,
        row_count=result.row_count,
        duration_ms=result.duration_ms,
    )
