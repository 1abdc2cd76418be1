"""EndpointManager - endpoint registry and status state machine.

Status transitions:

    draft     -> active      requires a live API key
    suspended -> active      requires a live API key
    active    -> suspended
    active    -> draft
    suspended -> draft

Setting the current status again is a no-op. Managers only flush; the
lifecycle coordinator (or the request session) owns the commit.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.config import get_settings
from gateway.errors import (
    FieldViolation,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from gateway.models.activity import ActivityType
from gateway.models.api_key import ApiKey
from gateway.models.endpoint import (
    Endpoint,
    EndpointPatch,
    EndpointSpec,
    EndpointStatus,
    EndpointType,
    HttpMethod,
)
from gateway.models.tag import EndpointTagLink
from gateway.services.activity import ActivityRecorder
from gateway.utils.datetime import utcnow
from gateway.validators.endpoint import validate_endpoint_fields

logger = structlog.get_logger()

_ALLOWED_TRANSITIONS: dict[EndpointStatus, set[EndpointStatus]] = {
    EndpointStatus.DRAFT: {EndpointStatus.ACTIVE},
    EndpointStatus.ACTIVE: {EndpointStatus.SUSPENDED, EndpointStatus.DRAFT},
    EndpointStatus.SUSPENDED: {EndpointStatus.ACTIVE, EndpointStatus.DRAFT},
}

_STATUS_EVENTS = {
    EndpointStatus.ACTIVE: ActivityType.ENDPOINT_ENABLED,
    EndpointStatus.SUSPENDED: ActivityType.ENDPOINT_SUSPENDED,
    EndpointStatus.DRAFT: ActivityType.ENDPOINT_DRAFT,
}


def parse_status(value: str | EndpointStatus) -> EndpointStatus:
    """Parse a status value, raising ValidationError for unknown ones."""
    try:
        return EndpointStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in EndpointStatus)
        raise ValidationError.for_field("status", f"status must be one of: {allowed}")


class EndpointManager:
    """Owns endpoint records and their status."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        activity: ActivityRecorder | None = None,
    ) -> None:
        self._db = db_session
        self._activity = activity or ActivityRecorder(db_session)
        self._log = logger.bind(manager="endpoint")
        self._settings = get_settings()

    # -- Reads --

    async def get(self, endpoint_id: str, *, for_update: bool = False) -> Endpoint:
        """Get endpoint by ID.

        Raises:
            NotFoundError: If endpoint not found
        """
        query = select(Endpoint).where(Endpoint.id == endpoint_id)
        if for_update:
            query = query.with_for_update()
        result = await self._db.execute(query)
        endpoint = result.scalars().first()

        if endpoint is None:
            raise NotFoundError(f"Endpoint not found: {endpoint_id}")

        return endpoint

    async def get_by_ref(self, ref: str) -> Endpoint:
        """Resolve an endpoint by ID or custom path (ID wins)."""
        result = await self._db.execute(
            select(Endpoint).where(or_(Endpoint.id == ref, Endpoint.path == ref))
        )
        matches = list(result.scalars().all())
        if not matches:
            raise NotFoundError(f"Endpoint not found: {ref}")

        for endpoint in matches:
            if endpoint.id == ref:
                return endpoint
        return matches[0]

    async def list(
        self,
        *,
        status: EndpointStatus | None = None,
        tag_id: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Endpoint], int]:
        """List endpoints, newest first.

        Returns:
            Tuple of (endpoints, total matching)
        """
        query = select(Endpoint)
        if status is not None:
            query = query.where(Endpoint.status == status)
        if tag_id is not None:
            query = query.join(
                EndpointTagLink, EndpointTagLink.endpoint_id == Endpoint.id
            ).where(EndpointTagLink.tag_id == tag_id)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(Endpoint.name).like(pattern),
                    func.lower(func.coalesce(Endpoint.description, "")).like(pattern),
                )
            )

        count_result = await self._db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar_one()

        result = await self._db.execute(
            query.order_by(Endpoint.created_at.desc(), Endpoint.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def has_live_key(self, endpoint_id: str) -> bool:
        """Whether a non-revoked, non-deleted key exists for the endpoint."""
        result = await self._db.execute(
            select(ApiKey.id)
            .where(
                ApiKey.endpoint_id == endpoint_id,
                ApiKey.is_active == True,  # noqa: E712
                ApiKey.is_deleted == False,  # noqa: E712
            )
            .limit(1)
        )
        return result.scalars().first() is not None

    async def count_by_status(self) -> dict[str, int]:
        result = await self._db.execute(
            select(Endpoint.status, func.count()).group_by(Endpoint.status)
        )
        counts = {s.value: 0 for s in EndpointStatus}
        for status, count in result.all():
            counts[EndpointStatus(status).value] = count
        counts["total"] = sum(counts.values())
        return counts

    def url_for(self, endpoint: Endpoint) -> str:
        base = self._settings.endpoints.public_base_url.rstrip("/")
        return f"{base}/{endpoint.public_path}"

    # -- Writes --

    async def create(self, spec: EndpointSpec, *, actor: str) -> Endpoint:
        """Create an endpoint in draft status.

        Raises:
            ValidationError: Listing every invalid field
        """
        values = spec.model_dump()
        violations = validate_endpoint_fields(values)
        violations.extend(await self._check_path_unique(spec.path))
        if violations:
            raise ValidationError("Invalid endpoint definition", violations=violations)

        now = utcnow()
        endpoint = Endpoint(
            id=f"ep-{uuid.uuid4().hex[:12]}",
            name=spec.name.strip(),
            description=spec.description,
            type=EndpointType(spec.type),
            target=spec.target,
            method=HttpMethod((spec.method or HttpMethod.GET.value).upper()),
            path=spec.path,
            rate_limit=spec.rate_limit or self._settings.endpoints.default_rate_limit,
            parameters=[p.model_dump() for p in spec.parameters],
            status=EndpointStatus.DRAFT,
            created_by=actor,
            updated_by=actor,
            created_at=now,
            updated_at=now,
        )
        self._db.add(endpoint)
        await self._flush_path(spec.path)

        self._log.info(
            "endpoint.create",
            endpoint_id=endpoint.id,
            type=endpoint.type.value,
            actor=actor,
        )
        await self._activity.record(
            ActivityType.ENDPOINT_CREATED,
            entity_type="endpoint",
            entity_id=endpoint.id,
            entity_name=endpoint.name,
            actor=actor,
        )
        return endpoint

    async def update(
        self,
        endpoint_id: str,
        patch: EndpointPatch,
        *,
        actor: str,
    ) -> Endpoint:
        """Apply a partial update.

        A status in the patch is checked against the state machine before
        any field is applied, so the update is all-or-nothing.
        """
        endpoint = await self.get(endpoint_id, for_update=True)
        changes = patch.changes()

        violations = validate_endpoint_fields(changes, partial=True)
        if "path" in changes and changes["path"] != endpoint.path:
            violations.extend(
                await self._check_path_unique(changes["path"], exclude_id=endpoint.id)
            )

        target_status: EndpointStatus | None = None
        if patch.status is not None:
            try:
                target_status = EndpointStatus(patch.status)
            except ValueError:
                allowed = ", ".join(s.value for s in EndpointStatus)
                violations.append(FieldViolation("status", f"status must be one of: {allowed}"))

        if violations:
            raise ValidationError("Invalid endpoint update", violations=violations)

        if target_status is not None:
            await self._check_transition(endpoint, target_status)

        if changes:
            for field, value in self._normalize(changes).items():
                setattr(endpoint, field, value)
            endpoint.updated_by = actor
            endpoint.updated_at = utcnow()
            await self._flush_path(endpoint.path)

            self._log.info(
                "endpoint.update",
                endpoint_id=endpoint.id,
                fields=sorted(changes),
                actor=actor,
            )
            await self._activity.record(
                ActivityType.ENDPOINT_UPDATED,
                entity_type="endpoint",
                entity_id=endpoint.id,
                entity_name=endpoint.name,
                actor=actor,
                message=f"Updated {', '.join(sorted(changes))}",
            )

        if target_status is not None and target_status != endpoint.status:
            await self._apply_status(endpoint, target_status, actor=actor)

        return endpoint

    async def set_status(
        self,
        endpoint_id: str,
        status: str | EndpointStatus,
        *,
        actor: str,
        event: ActivityType | None = None,
        message: str | None = None,
    ) -> Endpoint:
        """Move an endpoint through the status state machine.

        Raises:
            ValidationError: Unknown status value
            PreconditionFailedError: Transition not allowed, or activation
                without a live API key
        """
        target = parse_status(status)
        endpoint = await self.get(endpoint_id, for_update=True)
        await self._check_transition(endpoint, target)

        if target != endpoint.status:
            await self._apply_status(
                endpoint, target, actor=actor, event=event, message=message
            )
        return endpoint

    async def remove(self, endpoint: Endpoint, *, actor: str) -> None:
        """Delete the endpoint row.

        Keys must already be revoked and tags detached; the lifecycle
        coordinator does both before calling this.
        """
        if await self.has_live_key(endpoint.id):
            raise PreconditionFailedError(
                "Endpoint still has an active API key",
                endpoint_id=endpoint.id,
            )

        endpoint_id, name = endpoint.id, endpoint.name
        await self._db.delete(endpoint)
        await self._db.flush()

        self._log.info("endpoint.delete", endpoint_id=endpoint_id, actor=actor)
        await self._activity.record(
            ActivityType.ENDPOINT_DELETED,
            entity_type="endpoint",
            entity_id=endpoint_id,
            entity_name=name,
            actor=actor,
        )

    # -- Internals --

    async def _check_transition(self, endpoint: Endpoint, target: EndpointStatus) -> None:
        current = endpoint.status
        if target == current:
            return

        if target not in _ALLOWED_TRANSITIONS[current]:
            raise PreconditionFailedError(
                f"Cannot change status from {current.value} to {target.value}",
                endpoint_id=endpoint.id,
                current_status=current.value,
                requested_status=target.value,
            )

        if target == EndpointStatus.ACTIVE and not await self.has_live_key(endpoint.id):
            raise PreconditionFailedError(
                "An active API key is required before an endpoint can be activated",
                endpoint_id=endpoint.id,
                reason="key_required",
            )

    async def _apply_status(
        self,
        endpoint: Endpoint,
        target: EndpointStatus,
        *,
        actor: str,
        event: ActivityType | None = None,
        message: str | None = None,
    ) -> None:
        previous = endpoint.status
        endpoint.status = target
        endpoint.updated_by = actor
        endpoint.updated_at = utcnow()
        await self._db.flush()

        self._log.info(
            "endpoint.status",
            endpoint_id=endpoint.id,
            previous=previous.value,
            status=target.value,
            actor=actor,
        )
        await self._activity.record(
            event or _STATUS_EVENTS[target],
            entity_type="endpoint",
            entity_id=endpoint.id,
            entity_name=endpoint.name,
            actor=actor,
            message=message or f"Status changed from {previous.value} to {target.value}",
        )

    async def _check_path_unique(
        self,
        path: str | None,
        *,
        exclude_id: str | None = None,
    ) -> list[FieldViolation]:
        if not path:
            return []
        query = select(Endpoint.id).where(Endpoint.path == path)
        if exclude_id is not None:
            query = query.where(Endpoint.id != exclude_id)
        result = await self._db.execute(query.limit(1))
        if result.scalars().first() is not None:
            return [FieldViolation("path", f"path is already in use: {path}")]
        return []

    async def _flush_path(self, path: str | None) -> None:
        try:
            await self._db.flush()
        except IntegrityError:
            # Lost a race with another request on the unique path index
            await self._db.rollback()
            self._log.warning("endpoint.path_conflict", path=path)
            raise ValidationError.for_field("path", f"path is already in use: {path}")

    def _normalize(self, changes: dict[str, Any]) -> dict[str, Any]:
        normalized = dict(changes)
        if "name" in normalized:
            normalized["name"] = normalized["name"].strip()
        if "type" in normalized:
            normalized["type"] = EndpointType(normalized["type"])
        if "method" in normalized:
            normalized["method"] = HttpMethod(normalized["method"].upper())
        if "parameters" in normalized:
            # EndpointPatch.changes() already dumped them to dicts
            normalized["parameters"] = list(normalized["parameters"])
        return normalized
