"""Activity log and statistics API."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query

from gateway.api.dependencies import ActivityRecorderDep, AuthDep, CoordinatorDep
from gateway.api.schemas import CamelModel
from gateway.config import get_settings
from gateway.errors import ValidationError
from gateway.models.activity import ActivityType

router = APIRouter()


class ActivityEventResponse(CamelModel):
    id: str
    type: str
    entity_type: str
    entity_id: str
    entity_name: str | None
    actor: str
    message: str | None
    created_at: datetime


class EndpointStats(CamelModel):
    total: int
    draft: int
    active: int
    suspended: int


class ApiKeyStats(CamelModel):
    total: int
    active: int
    revoked: int
    deleted: int
    total_usage: int


class StatsResponse(CamelModel):
    endpoints: EndpointStats
    api_keys: ApiKeyStats


@router.get("/activity", response_model=list[ActivityEventResponse])
async def list_activity(
    recorder: ActivityRecorderDep,
    _principal: AuthDep,
    limit: int | None = Query(None, ge=1),
    entity_id: str | None = Query(None, alias="entityId"),
    event_type: list[str] | None = Query(None, alias="type"),
) -> list[ActivityEventResponse]:
    """Recent lifecycle events, newest first."""
    config = get_settings().activity
    limit = min(limit or config.default_limit, config.max_limit)

    types = None
    if event_type:
        try:
            types = [ActivityType(t) for t in event_type]
        except ValueError:
            raise ValidationError.for_field("type", f"unknown activity type in {event_type}")

    events = await recorder.list_recent(limit=limit, entity_id=entity_id, types=types)
    return [
        ActivityEventResponse(
            id=e.id,
            type=e.type.value,
            entity_type=e.entity_type,
            entity_id=e.entity_id,
            entity_name=e.entity_name,
            actor=e.actor,
            message=e.message,
            created_at=e.created_at,
        )
        for e in events
    ]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    coordinator: CoordinatorDep,
    _principal: AuthDep,
) -> StatsResponse:
    """Endpoint counts by status and key counts by state."""
    counts = await coordinator.endpoints.count_by_status()
    keys = await coordinator.keys.stats()
    return StatsResponse(
        endpoints=EndpointStats(**counts),
        api_keys=ApiKeyStats(
            total=keys.total,
            active=keys.active,
            revoked=keys.revoked,
            deleted=keys.deleted,
            total_usage=keys.total_usage,
        ),
    )
