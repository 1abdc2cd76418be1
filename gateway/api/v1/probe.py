"""Probe API: run an ad-hoc target without an endpoint record."""

from __future__ import annotations

from fastapi import APIRouter

from gateway.api.dependencies import AdminDep, ProbeServiceDep
from gateway.api.schemas import CamelModel, ParameterBindingModel, ProbeResponse
from gateway.executors.base import ParameterBinding

router = APIRouter()


class ProbeRequest(CamelModel):
    type: str | None = None
    target: str | None = None
    parameters: list[ParameterBindingModel] = []
    limit: int | None = None
    offset: int | None = None


@router.post("", response_model=ProbeResponse)
async def probe_target(
    request: ProbeRequest,
    probe: ProbeServiceDep,
    _principal: AdminDep,
) -> ProbeResponse:
    """Validate a target by running it. Nothing is persisted.

    ``limit`` / ``offset`` apply to table targets only.
    """
    result = await probe.probe_target(
        request.type,
        request.target,
        [ParameterBinding(name=p.name, value=p.value) for p in request.parameters],
        limit=request.limit,
        offset=request.offset,
    )
    return ProbeResponse(
        rows=result.rows,
        row_count=result.row_count,
        duration_ms=result.duration_ms,
    )
