"""Tags API."""

from __future__ import annotations

from fastapi import APIRouter

from gateway.api.dependencies import AdminDep, AuthDep, CoordinatorDep
from gateway.api.schemas import CamelModel, TagResponse, tag_to_response

router = APIRouter()


class CreateTagRequest(CamelModel):
    name: str
    color: str | None = None
    description: str | None = None


class UpdateTagRequest(CamelModel):
    name: str | None = None
    color: str | None = None
    description: str | None = None


@router.get("", response_model=list[TagResponse])
async def list_tags(
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> list[TagResponse]:
    """All tags, ordered by name."""
    return [tag_to_response(t) for t in await coordinator.tags.list()]


@router.post("", response_model=TagResponse, status_code=201)
async def create_tag(
    request: CreateTagRequest,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> TagResponse:
    tag = await coordinator.tags.create(
        request.name,
        actor=principal.name,
        color=request.color,
        description=request.description,
    )
    return tag_to_response(tag)


@router.get("/{tag_id}", response_model=TagResponse)
async def get_tag(
    tag_id: str,
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> TagResponse:
    return tag_to_response(await coordinator.tags.get(tag_id))


@router.put("/{tag_id}", response_model=TagResponse)
async def update_tag(
    tag_id: str,
    request: UpdateTagRequest,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> TagResponse:
    kwargs = {}
    if "description" in request.model_fields_set:
        kwargs["description"] = request.description
    tag = await coordinator.tags.update(
        tag_id,
        actor=principal.name,
        name=request.name,
        color=request.color,
        **kwargs,
    )
    return tag_to_response(tag)


@router.delete("/{tag_id}", status_code=204)
async def delete_tag(
    tag_id: str,
    coordinator: CoordinatorDep,
    principal: AdminDep,
) -> None:
    """Delete a tag. Endpoints carrying it simply lose it."""
    await coordinator.tags.delete(tag_id, actor=principal.name)
