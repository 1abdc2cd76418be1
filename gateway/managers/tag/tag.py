"""TagManager - tag registry and endpoint tag sets."""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Sequence

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.errors import ConflictError, NotFoundError, ValidationError
from gateway.models.activity import ActivityType
from gateway.models.endpoint import Endpoint
from gateway.models.tag import DEFAULT_TAG_COLOR, EndpointTagLink, Tag
from gateway.services.activity import ActivityRecorder
from gateway.utils.datetime import utcnow

logger = structlog.get_logger()

_UNSET = object()


class TagManager:
    """Owns tags and endpoint/tag links."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        activity: ActivityRecorder | None = None,
    ) -> None:
        self._db = db_session
        self._activity = activity or ActivityRecorder(db_session)
        self._log = logger.bind(manager="tag")

    async def get(self, tag_id: str) -> Tag:
        tag = await self._db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError(f"Tag not found: {tag_id}")
        return tag

    async def list(self) -> list[Tag]:
        """All tags, ordered by name."""
        result = await self._db.execute(select(Tag).order_by(Tag.name_key, Tag.id))
        return list(result.scalars().all())

    async def create(
        self,
        name: str,
        *,
        actor: str,
        color: str | None = None,
        description: str | None = None,
    ) -> Tag:
        """Create a tag.

        Raises:
            ValidationError: If name is empty
            ConflictError: If a tag with the same name (case-insensitive) exists
        """
        name = self._clean_name(name)
        await self._ensure_name_free(name)

        now = utcnow()
        tag = Tag(
            id=f"tag-{uuid.uuid4().hex[:12]}",
            name=name,
            name_key=name.lower(),
            color=color or DEFAULT_TAG_COLOR,
            description=description,
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        self._db.add(tag)
        await self._flush_name(name)

        self._log.info("tag.create", tag_id=tag.id, name=name, actor=actor)
        await self._activity.record(
            ActivityType.TAG_CREATED,
            entity_type="tag",
            entity_id=tag.id,
            entity_name=tag.name,
            actor=actor,
        )
        return tag

    async def update(
        self,
        tag_id: str,
        *,
        actor: str,
        name: str | None = None,
        color: str | None = None,
        description: str | None | object = _UNSET,
    ) -> Tag:
        """Rename, recolour or re-describe a tag. ``description=None`` clears it."""
        tag = await self.get(tag_id)

        if name is not None:
            name = self._clean_name(name)
            if name.lower() != tag.name_key:
                await self._ensure_name_free(name)
            tag.name = name
            tag.name_key = name.lower()
        if color is not None:
            tag.color = color
        if description is not _UNSET:
            tag.description = description
        tag.updated_at = utcnow()
        await self._flush_name(tag.name)

        self._log.info("tag.update", tag_id=tag_id, actor=actor)
        await self._activity.record(
            ActivityType.TAG_UPDATED,
            entity_type="tag",
            entity_id=tag.id,
            entity_name=tag.name,
            actor=actor,
        )
        return tag

    async def delete(self, tag_id: str, *, actor: str) -> None:
        """Delete a tag and detach it from every endpoint."""
        tag = await self.get(tag_id)
        name = tag.name

        result = await self._db.execute(
            delete(EndpointTagLink).where(EndpointTagLink.tag_id == tag_id)
        )
        await self._db.delete(tag)
        await self._db.flush()

        self._log.info(
            "tag.delete",
            tag_id=tag_id,
            detached=result.rowcount,
            actor=actor,
        )
        await self._activity.record(
            ActivityType.TAG_DELETED,
            entity_type="tag",
            entity_id=tag_id,
            entity_name=name,
            actor=actor,
            message=f"Detached from {result.rowcount} endpoint(s)",
        )

    async def set_endpoint_tags(
        self,
        endpoint_id: str,
        tag_ids: Sequence[str],
        *,
        actor: str,
    ) -> list[Tag]:
        """Replace an endpoint's tag set.

        Raises:
            NotFoundError: Unknown endpoint, or any unknown tag ID (all listed)
        """
        endpoint = await self._db.get(Endpoint, endpoint_id)
        if endpoint is None:
            raise NotFoundError(f"Endpoint not found: {endpoint_id}")

        wanted = list(dict.fromkeys(tag_ids))
        tags: list[Tag] = []
        if wanted:
            result = await self._db.execute(select(Tag).where(Tag.id.in_(wanted)))
            tags = list(result.scalars().all())
            missing = sorted(set(wanted) - {t.id for t in tags})
            if missing:
                raise NotFoundError(
                    f"Tags not found: {', '.join(missing)}",
                    tag_ids=missing,
                )

        await self._db.execute(
            delete(EndpointTagLink).where(EndpointTagLink.endpoint_id == endpoint_id)
        )
        for tag_id in wanted:
            self._db.add(EndpointTagLink(endpoint_id=endpoint_id, tag_id=tag_id))
        await self._db.flush()

        self._log.info(
            "tag.set_endpoint_tags",
            endpoint_id=endpoint_id,
            tag_ids=wanted,
            actor=actor,
        )
        await self._activity.record(
            ActivityType.ENDPOINT_TAGS_UPDATED,
            entity_type="endpoint",
            entity_id=endpoint_id,
            entity_name=endpoint.name,
            actor=actor,
            message=f"Tags: {', '.join(sorted(t.name for t in tags)) or '(none)'}",
        )
        return sorted(tags, key=lambda t: t.name_key)

    async def tags_for_endpoint(self, endpoint_id: str) -> list[Tag]:
        return (await self.tags_for_endpoints([endpoint_id]))[endpoint_id]

    async def tags_for_endpoints(self, endpoint_ids: Sequence[str]) -> dict[str, list[Tag]]:
        """Tags per endpoint, each list ordered by name."""
        tags_by_endpoint: dict[str, list[Tag]] = defaultdict(list)
        if endpoint_ids:
            result = await self._db.execute(
                select(EndpointTagLink.endpoint_id, Tag)
                .join(Tag, Tag.id == EndpointTagLink.tag_id)
                .where(EndpointTagLink.endpoint_id.in_(list(endpoint_ids)))
                .order_by(Tag.name_key)
            )
            for endpoint_id, tag in result.all():
                tags_by_endpoint[endpoint_id].append(tag)
        return {endpoint_id: tags_by_endpoint[endpoint_id] for endpoint_id in endpoint_ids}

    async def detach_all(self, endpoint_id: str) -> int:
        """Remove every tag link of an endpoint. Returns the number removed."""
        result = await self._db.execute(
            delete(EndpointTagLink).where(EndpointTagLink.endpoint_id == endpoint_id)
        )
        await self._db.flush()
        return result.rowcount

    def _clean_name(self, name: str | None) -> str:
        if name is None or not name.strip():
            raise ValidationError.for_field("name", "name is required")
        return name.strip()

    async def _flush_name(self, name: str) -> None:
        try:
            await self._db.flush()
        except IntegrityError:
            # Lost a race with another request on the unique name index
            await self._db.rollback()
            self._log.warning("tag.name_conflict", name=name)
            raise ConflictError(f"Tag already exists: {name}", name=name)

    async def _ensure_name_free(self, name: str) -> None:
        result = await self._db.execute(select(Tag.id).where(Tag.name_key == name.lower()))
        if result.scalars().first() is not None:
            raise ConflictError(f"Tag already exists: {name}", name=name)
