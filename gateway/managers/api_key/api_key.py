"""ApiKeyManager - credential store for per-endpoint API keys.

Key lifecycle:

    generate -> active
    revoke   -> inactive (record kept, can be listed)
    delete   -> tombstone (only after revoke; invisible to every read)

At most one live key exists per endpoint. This is checked under the
endpoint lock and enforced by a partial unique index.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.errors import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
)
from gateway.models.activity import ActivityType
from gateway.models.api_key import ApiKey
from gateway.models.endpoint import Endpoint
from gateway.services.activity import ActivityRecorder
from gateway.services.api_key import ApiKeyService
from gateway.utils.datetime import utcnow

logger = structlog.get_logger()


@dataclass
class IssuedKey:
    """A freshly generated key. ``token`` is the only copy of the plaintext."""

    api_key: ApiKey
    token: str


@dataclass
class KeyStats:
    total: int = 0
    active: int = 0
    revoked: int = 0
    deleted: int = 0
    total_usage: int = 0


class ApiKeyManager:
    """Owns API key records."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        activity: ActivityRecorder | None = None,
    ) -> None:
        self._db = db_session
        self._activity = activity or ActivityRecorder(db_session)
        self._log = logger.bind(manager="api_key")

    # -- Reads --

    async def get(self, key_id: str) -> ApiKey:
        """Get a key by ID. Deleted keys are reported as not found."""
        result = await self._db.execute(
            select(ApiKey).where(
                ApiKey.id == key_id,
                ApiKey.is_deleted == False,  # noqa: E712
            )
        )
        api_key = result.scalars().first()

        if api_key is None:
            raise NotFoundError(f"API key not found: {key_id}")

        return api_key

    async def get_live_key(self, endpoint_id: str) -> ApiKey | None:
        result = await self._db.execute(
            select(ApiKey).where(
                ApiKey.endpoint_id == endpoint_id,
                ApiKey.is_active == True,  # noqa: E712
                ApiKey.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalars().first()

    async def get_current(self, endpoint_id: str) -> ApiKey:
        """Live key of an endpoint, else its most recently created revoked key.

        Raises:
            NotFoundError: If the endpoint has no visible key
        """
        result = await self._db.execute(
            select(ApiKey)
            .where(
                ApiKey.endpoint_id == endpoint_id,
                ApiKey.is_deleted == False,  # noqa: E712
            )
            .order_by(ApiKey.is_active.desc(), ApiKey.created_at.desc())
            .limit(1)
        )
        api_key = result.scalars().first()
        if api_key is None:
            raise NotFoundError(f"No API key for endpoint: {endpoint_id}")
        return api_key

    async def list(
        self,
        *,
        endpoint_id: str | None = None,
        include_revoked: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ApiKey], int]:
        """List visible keys, newest first.

        Returns:
            Tuple of (keys, total matching)
        """
        query = select(ApiKey).where(ApiKey.is_deleted == False)  # noqa: E712
        if endpoint_id is not None:
            query = query.where(ApiKey.endpoint_id == endpoint_id)
        if not include_revoked:
            query = query.where(ApiKey.is_active == True)  # noqa: E712

        count_result = await self._db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar_one()

        result = await self._db.execute(
            query.order_by(ApiKey.created_at.desc(), ApiKey.id).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def live_endpoint_ids(self, endpoint_ids: Sequence[str]) -> set[str]:
        """Which of the given endpoints currently have a live key."""
        if not endpoint_ids:
            return set()
        result = await self._db.execute(
            select(ApiKey.endpoint_id).where(
                ApiKey.endpoint_id.in_(list(endpoint_ids)),
                ApiKey.is_active == True,  # noqa: E712
                ApiKey.is_deleted == False,  # noqa: E712
            )
        )
        return set(result.scalars().all())

    async def list_for_endpoint(self, endpoint_id: str) -> list[ApiKey]:
        """All visible keys of an endpoint, live or revoked."""
        result = await self._db.execute(
            select(ApiKey).where(
                ApiKey.endpoint_id == endpoint_id,
                ApiKey.is_deleted == False,  # noqa: E712
            )
        )
        return list(result.scalars().all())

    async def stats(self) -> KeyStats:
        result = await self._db.execute(
            select(
                ApiKey.is_active,
                ApiKey.is_deleted,
                func.count(),
                func.coalesce(func.sum(ApiKey.usage_count), 0),
            ).group_by(ApiKey.is_active, ApiKey.is_deleted)
        )
        stats = KeyStats()
        for is_active, is_deleted, count, usage in result.all():
            stats.total += count
            stats.total_usage += usage
            if is_deleted:
                stats.deleted += count
            elif is_active:
                stats.active += count
            else:
                stats.revoked += count
        return stats

    async def authenticate(self, token: str) -> ApiKey:
        """Resolve a plaintext token to its live key.

        Raises:
            UnauthorizedError: Unknown, revoked or deleted token
        """
        key_hash = ApiKeyService.hash_key(token)
        result = await self._db.execute(
            select(ApiKey).where(
                ApiKey.key_hash == key_hash,
                ApiKey.is_active == True,  # noqa: E712
                ApiKey.is_deleted == False,  # noqa: E712
            )
        )
        api_key = result.scalars().first()
        if api_key is None or not ApiKeyService.verify_key(token, api_key.key_hash):
            raise UnauthorizedError("Invalid or revoked API key")
        return api_key

    # -- Writes --

    async def generate(self, endpoint_id: str, *, actor: str) -> IssuedKey:
        """Generate the live key of an endpoint.

        Raises:
            NotFoundError: If endpoint not found
            ConflictError: If the endpoint already has a live key
        """
        endpoint = await self._db.get(Endpoint, endpoint_id)
        if endpoint is None:
            raise NotFoundError(f"Endpoint not found: {endpoint_id}")

        existing = await self.get_live_key(endpoint_id)
        if existing is not None:
            raise ConflictError(
                "Endpoint already has an active API key",
                endpoint_id=endpoint_id,
                key_id=existing.id,
            )

        plaintext, key_hash, key_prefix = ApiKeyService.generate_key()
        api_key = ApiKey(
            id=f"key-{uuid.uuid4().hex[:12]}",
            endpoint_id=endpoint_id,
            key_hash=key_hash,
            key_prefix=key_prefix,
            is_active=True,
            usage_count=0,
            created_by=actor,
        )
        self._db.add(api_key)
        try:
            await self._db.flush()
        except IntegrityError:
            # Lost a race with another instance on the live-key index
            await self._db.rollback()
            self._log.warning("api_key.generate.conflict", endpoint_id=endpoint_id)
            raise ConflictError(
                "Endpoint already has an active API key",
                endpoint_id=endpoint_id,
            )

        self._log.info(
            "api_key.generate",
            key_id=api_key.id,
            endpoint_id=endpoint_id,
            key_prefix=key_prefix,
            actor=actor,
        )
        await self._activity.record(
            ActivityType.API_KEY_GENERATED,
            entity_type="api_key",
            entity_id=api_key.id,
            entity_name=key_prefix,
            actor=actor,
            message=f"Generated for endpoint {endpoint_id}",
        )
        return IssuedKey(api_key=api_key, token=plaintext)

    async def revoke(self, key_id: str, *, actor: str) -> ApiKey:
        """Deactivate a key. The record is kept.

        Callers must also suspend the owning endpoint if it is active; the
        lifecycle coordinator does this in the same transaction.

        Raises:
            NotFoundError: If key not found
            ConflictError: If key is already revoked
        """
        api_key = await self.get(key_id)
        if not api_key.is_active:
            raise ConflictError(
                "API key is already revoked",
                key_id=key_id,
                revoked_at=api_key.revoked_at.isoformat() if api_key.revoked_at else None,
            )

        api_key.is_active = False
        api_key.revoked_at = utcnow()
        await self._db.flush()

        self._log.info("api_key.revoke", key_id=key_id, endpoint_id=api_key.endpoint_id, actor=actor)
        await self._activity.record(
            ActivityType.API_KEY_REVOKED,
            entity_type="api_key",
            entity_id=api_key.id,
            entity_name=api_key.key_prefix,
            actor=actor,
            message=f"Revoked for endpoint {api_key.endpoint_id}",
        )
        return api_key

    async def delete(self, key_id: str, *, actor: str) -> ApiKey:
        """Permanently delete a revoked key.

        Raises:
            NotFoundError: If key not found
            PreconditionFailedError: If key is still active
        """
        api_key = await self.get(key_id)
        if api_key.is_active:
            raise PreconditionFailedError(
                "API key must be revoked before it can be deleted",
                key_id=key_id,
            )

        api_key.is_deleted = True
        api_key.deleted_at = utcnow()
        await self._db.flush()

        self._log.info("api_key.delete", key_id=key_id, endpoint_id=api_key.endpoint_id, actor=actor)
        await self._activity.record(
            ActivityType.API_KEY_DELETED,
            entity_type="api_key",
            entity_id=api_key.id,
            entity_name=api_key.key_prefix,
            actor=actor,
        )
        return api_key

    async def replace(self, endpoint_id: str, *, actor: str) -> IssuedKey:
        """Revoke the live key (if any) and generate a new one.

        Endpoint status is left untouched.
        """
        existing = await self.get_live_key(endpoint_id)
        if existing is not None:
            await self.revoke(existing.id, actor=actor)
        return await self.generate(endpoint_id, actor=actor)

    async def record_usage(self, key_id: str) -> ApiKey:
        """Atomically bump usage_count and last_used_at.

        Raises:
            NotFoundError: If key not found
            UnauthorizedError: If key is revoked or deleted
        """
        result = await self._db.execute(
            update(ApiKey)
            .where(
                ApiKey.id == key_id,
                ApiKey.is_active == True,  # noqa: E712
                ApiKey.is_deleted == False,  # noqa: E712
            )
            .values(usage_count=ApiKey.usage_count + 1, last_used_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            exists = await self._db.execute(select(ApiKey.id).where(ApiKey.id == key_id))
            if exists.scalars().first() is None:
                raise NotFoundError(f"API key not found: {key_id}")
            raise UnauthorizedError("API key is revoked", key_id=key_id)

        refreshed = await self._db.execute(
            select(ApiKey)
            .where(ApiKey.id == key_id)
            .execution_options(populate_existing=True)
        )
        return refreshed.scalars().one()
