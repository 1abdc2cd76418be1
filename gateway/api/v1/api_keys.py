"""API keys API.

Listing and per-key revoke / delete. Keys are generated and rotated through
their endpoint (``/endpoints/{id}/api_key``).
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from gateway.api.dependencies import AdminDep, AuthDep, CoordinatorDep
from gateway.api.schemas import ApiKeyResponse, CamelModel, api_key_to_response

router = APIRouter()


class ApiKeyListResponse(CamelModel):
    items: list[ApiKeyResponse]
    total: int


@router.get("", response_model=ApiKeyListResponse)
async def list_api_keys(
    coordinator: CoordinatorDep,
    _principal: AuthDep,
    endpoint_id: str | None = Query(None, alias="endpointId"),
    include_revoked: bool = Query(True, alias="includeRevoked"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> ApiKeyListResponse:
    """List keys (metadata only), newest first. Deleted keys never appear."""
    keys, total = await coordinator.keys.list(
        endpoint_id=endpoint_id,
        include_revoked=include_revoked,
        limit=limit,
        offset=offset,
    )
    return ApiKeyListResponse(items=[api_key_to_response(k) for k in keys], total=total)


@router.get("/{key_id}", response_model=ApiKeyResponse)
async def get_api_key(
    key_id: str,
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> ApiKeyResponse:
    return api_key_to_response(await coordinator.keys.get(key_id))


@router.post("/{key_id}/revoke", response_model=ApiKeyResponse)
async def revoke_api_key(
    key_id: str,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> ApiKeyResponse:
    """Revoke a key. Its endpoint is suspended if it was active.

    Revoking an already revoked key fails with 409.
    """
    api_key = await coordinator.revoke_key(key_id, actor=principal.name)
    return api_key_to_response(api_key)


@router.delete("/{key_id}", response_model=ApiKeyResponse)
async def delete_api_key(
    key_id: str,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> ApiKeyResponse:
    """Permanently delete a revoked key (409 while it is still active)."""
    api_key = await coordinator.delete_key(key_id, actor=principal.name)
    return api_key_to_response(api_key)
