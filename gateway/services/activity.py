"""Activity recorder.

Append-only log of lifecycle events. Events are added to the caller's
session and therefore commit or roll back together with the change they
describe. Each event is mirrored to the structured log.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.models.activity import ActivityEvent, ActivityType

logger = structlog.get_logger()


class ActivityRecorder:
    """Writes and lists activity events."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(service="activity")

    async def record(
        self,
        event_type: ActivityType,
        *,
        entity_type: str,
        entity_id: str,
        actor: str,
        entity_name: str | None = None,
        message: str | None = None,
    ) -> ActivityEvent:
        """Append an event to the current transaction."""
        event = ActivityEvent(
            id=f"act-{uuid.uuid4().hex[:12]}",
            type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            actor=actor,
            message=message,
        )
        self._db.add(event)
        await self._db.flush()

        self._log.info(
            f"activity.{event_type.value}",
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            message=message,
        )
        return event

    async def list_recent(
        self,
        *,
        limit: int = 20,
        entity_id: str | None = None,
        types: Sequence[ActivityType] | None = None,
    ) -> list[ActivityEvent]:
        """List events, newest first."""
        query = select(ActivityEvent)
        if entity_id is not None:
            query = query.where(ActivityEvent.entity_id == entity_id)
        if types:
            query = query.where(ActivityEvent.type.in_(list(types)))
        query = query.order_by(
            ActivityEvent.created_at.desc(),
            ActivityEvent.id.desc(),
        ).limit(limit)

        result = await self._db.execute(query)
        return list(result.scalars().all())
