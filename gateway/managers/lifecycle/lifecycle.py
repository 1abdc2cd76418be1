"""LifecycleCoordinator - compound endpoint and key operations.

Enforces the cross-entity rule that an active endpoint always has a live
API key. Every operation runs under the endpoint lock and commits once at
the end (or rolls back), so intermediate states are never visible to other
sessions.

``create_endpoint`` is the only operation that reports partial success: the
endpoint itself is committed first, and tag assignment, key generation and
activation are each committed (or rolled back) on their own and reported as
warnings.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.concurrency.locks import cleanup_endpoint_lock, get_endpoint_lock
from gateway.errors import ConflictError, GatewayError, NotFoundError
from gateway.managers.api_key import ApiKeyManager, IssuedKey
from gateway.managers.endpoint import EndpointManager, parse_status
from gateway.managers.tag import TagManager
from gateway.models.activity import ActivityType
from gateway.models.api_key import ApiKey
from gateway.models.endpoint import Endpoint, EndpointPatch, EndpointSpec, EndpointStatus
from gateway.models.tag import Tag
from gateway.services.activity import ActivityRecorder

logger = structlog.get_logger()


@dataclass
class StepWarning:
    """A creation step that failed after the endpoint itself was created."""

    step: str  # tags | api_key | status
    code: str
    message: str


@dataclass
class CreateEndpointResult:
    endpoint: Endpoint
    token: str | None = None
    api_key: ApiKey | None = None
    tags: list[Tag] = field(default_factory=list)
    warnings: list[StepWarning] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.warnings


class LifecycleCoordinator:
    """Runs multi-entity lifecycle transitions atomically."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._activity = ActivityRecorder(db_session)
        self.endpoints = EndpointManager(db_session, activity=self._activity)
        self.keys = ApiKeyManager(db_session, activity=self._activity)
        self.tags = TagManager(db_session, activity=self._activity)
        self._log = logger.bind(manager="lifecycle")

    @asynccontextmanager
    async def _endpoint_transaction(self, endpoint_id: str) -> AsyncIterator[Endpoint]:
        """Serialize on the endpoint and commit once, or roll back.

        The endpoint row is locked (SELECT ... FOR UPDATE) before anything
        else runs, which also serializes callers in other processes. An
        unknown endpoint drops the lock that was created for it.
        """
        lock = await get_endpoint_lock(endpoint_id)
        async with lock:
            try:
                endpoint = await self.endpoints.get(endpoint_id, for_update=True)
            except NotFoundError:
                await self._db.rollback()
                await cleanup_endpoint_lock(endpoint_id)
                raise

            try:
                yield endpoint
                await self._db.commit()
            except BaseException:
                await self._db.rollback()
                raise

    # -- Endpoints --

    async def create_endpoint(
        self,
        spec: EndpointSpec,
        *,
        actor: str,
        generate_key: bool = False,
        status: str | EndpointStatus | None = None,
        tag_ids: Sequence[str] | None = None,
    ) -> CreateEndpointResult:
        """Create an endpoint, optionally tagging it, keying it and activating it.

        Raises:
            ValidationError: Invalid definition or status value; nothing is created
        """
        requested = parse_status(status) if status is not None else None

        try:
            endpoint = await self.endpoints.create(spec, actor=actor)
            await self._db.commit()
        except BaseException:
            await self._db.rollback()
            raise

        endpoint_id = endpoint.id
        result = CreateEndpointResult(endpoint=endpoint)
        lock = await get_endpoint_lock(endpoint_id)

        async with lock:
            if tag_ids:
                try:
                    result.tags = await self.tags.set_endpoint_tags(
                        endpoint_id, tag_ids, actor=actor
                    )
                    await self._db.commit()
                except (GatewayError, SQLAlchemyError) as e:
                    await self._step_failed(result, endpoint_id, "tags", e)

            if generate_key:
                try:
                    issued = await self.keys.generate(endpoint_id, actor=actor)
                    await self._db.commit()
                    result.api_key, result.token = issued.api_key, issued.token
                except (GatewayError, SQLAlchemyError) as e:
                    await self._step_failed(result, endpoint_id, "api_key", e)

            if requested is not None and requested != EndpointStatus.DRAFT:
                if generate_key and result.api_key is None:
                    result.warnings.append(
                        StepWarning(
                            step="status",
                            code="skipped",
                            message="Status not applied because API key generation failed",
                        )
                    )
                else:
                    try:
                        await self.endpoints.set_status(endpoint_id, requested, actor=actor)
                        await self._db.commit()
                    except (GatewayError, SQLAlchemyError) as e:
                        await self._step_failed(result, endpoint_id, "status", e)

        if result.warnings:
            # Rollbacks expire loaded instances; reload before handing them out
            await self._db.refresh(result.endpoint)
            if result.api_key is not None:
                await self._db.refresh(result.api_key)
            result.tags = await self.tags.tags_for_endpoint(endpoint_id)

        self._log.info(
            "lifecycle.create_endpoint",
            endpoint_id=endpoint_id,
            status=result.endpoint.status.value,
            key_generated=result.api_key is not None,
            warnings=[w.step for w in result.warnings],
        )
        return result

    async def update_endpoint(
        self,
        endpoint_id: str,
        patch: EndpointPatch,
        *,
        actor: str,
    ) -> Endpoint:
        async with self._endpoint_transaction(endpoint_id):
            endpoint = await self.endpoints.update(endpoint_id, patch, actor=actor)
        return endpoint

    async def set_status(
        self,
        endpoint_id: str,
        status: str | EndpointStatus,
        *,
        actor: str,
    ) -> Endpoint:
        async with self._endpoint_transaction(endpoint_id):
            endpoint = await self.endpoints.set_status(endpoint_id, status, actor=actor)
        return endpoint

    async def set_endpoint_tags(
        self,
        endpoint_id: str,
        tag_ids: Sequence[str],
        *,
        actor: str,
    ) -> list[Tag]:
        async with self._endpoint_transaction(endpoint_id):
            tags = await self.tags.set_endpoint_tags(endpoint_id, tag_ids, actor=actor)
        return tags

    async def delete_endpoint(self, endpoint_id: str, *, actor: str) -> None:
        """Revoke and delete the endpoint's keys, detach its tags, delete it.

        On failure everything is rolled back and an ``endpoint_delete_failed``
        event naming the failed step is committed before re-raising.
        """
        lock = await get_endpoint_lock(endpoint_id)
        async with lock:
            try:
                endpoint = await self.endpoints.get(endpoint_id, for_update=True)
            except NotFoundError:
                await self._db.rollback()
                await cleanup_endpoint_lock(endpoint_id)
                raise
            name = endpoint.name
            step = "revoke_key"
            try:
                live = await self.keys.get_live_key(endpoint_id)
                if live is not None:
                    try:
                        await self.keys.revoke(live.id, actor=actor)
                    except ConflictError:
                        pass  # revoked concurrently

                step = "delete_keys"
                for api_key in await self.keys.list_for_endpoint(endpoint_id):
                    await self.keys.delete(api_key.id, actor=actor)

                step = "detach_tags"
                detached = await self.tags.detach_all(endpoint_id)
                if detached:
                    await self._activity.record(
                        ActivityType.ENDPOINT_TAGS_UPDATED,
                        entity_type="endpoint",
                        entity_id=endpoint_id,
                        entity_name=name,
                        actor=actor,
                        message=f"Detached {detached} tag(s)",
                    )

                step = "remove"
                await self.endpoints.remove(endpoint, actor=actor)
                await self._db.commit()
            except Exception as e:
                await self._db.rollback()
                self._log.error(
                    "lifecycle.delete_endpoint.failed",
                    endpoint_id=endpoint_id,
                    step=step,
                    error=str(e),
                )
                await self._activity.record(
                    ActivityType.ENDPOINT_DELETE_FAILED,
                    entity_type="endpoint",
                    entity_id=endpoint_id,
                    entity_name=name,
                    actor=actor,
                    message=f"Failed at step {step}: {e}",
                )
                await self._db.commit()
                raise

        await cleanup_endpoint_lock(endpoint_id)

    # -- Keys --

    async def generate_key(self, endpoint_id: str, *, actor: str) -> IssuedKey:
        async with self._endpoint_transaction(endpoint_id):
            issued = await self.keys.generate(endpoint_id, actor=actor)
        return issued

    async def replace_key(self, endpoint_id: str, *, actor: str) -> IssuedKey:
        """Rotate the endpoint's key. An active endpoint stays active."""
        async with self._endpoint_transaction(endpoint_id):
            issued = await self.keys.replace(endpoint_id, actor=actor)
        return issued

    async def revoke_key(self, key_id: str, *, actor: str) -> ApiKey:
        """Revoke a key and suspend its endpoint if it was active."""
        endpoint_id = (await self.keys.get(key_id)).endpoint_id

        async with self._endpoint_transaction(endpoint_id) as endpoint:
            api_key = await self.keys.revoke(key_id, actor=actor)
            if endpoint.status == EndpointStatus.ACTIVE:
                await self.endpoints.set_status(
                    endpoint_id,
                    EndpointStatus.SUSPENDED,
                    actor=actor,
                    event=ActivityType.ENDPOINT_DISABLED,
                    message="Suspended because its API key was revoked",
                )
        return api_key

    async def delete_key(self, key_id: str, *, actor: str) -> ApiKey:
        endpoint_id = (await self.keys.get(key_id)).endpoint_id

        async with self._endpoint_transaction(endpoint_id):
            api_key = await self.keys.delete(key_id, actor=actor)
        return api_key

    async def record_usage(self, api_key: ApiKey, *, actor: str) -> ApiKey:
        """Count one successful invocation made with ``api_key``."""
        try:
            updated = await self.keys.record_usage(api_key.id)
            await self._activity.record(
                ActivityType.API_KEY_USED,
                entity_type="api_key",
                entity_id=api_key.id,
                entity_name=api_key.key_prefix,
                actor=actor,
            )
            await self._db.commit()
        except BaseException:
            await self._db.rollback()
            raise
        return updated

    async def _step_failed(
        self,
        result: CreateEndpointResult,
        endpoint_id: str,
        step: str,
        error: GatewayError | SQLAlchemyError,
    ) -> None:
        await self._db.rollback()
        code = error.code if isinstance(error, GatewayError) else "database_error"
        message = error.message if isinstance(error, GatewayError) else str(error)
        result.warnings.append(StepWarning(step=step, code=code, message=message))
        self._log.warning(
            "lifecycle.create_endpoint.step_failed",
            endpoint_id=endpoint_id,
            step=step,
            code=code,
            error=message,
        )
