"""FastAPI dependencies for the gateway API.

Provides dependency injection for:
- Database sessions
- Lifecycle coordinator (with its endpoint, key and tag managers)
- Query executor and probe service
- Authentication and role checks
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.config import Role, get_settings
from gateway.db.session import get_session_dependency
from gateway.errors import ForbiddenError, UnauthorizedError
from gateway.executors.base import QueryExecutor
from gateway.executors.http import HttpQueryExecutor
from gateway.managers.lifecycle import LifecycleCoordinator
from gateway.services.activity import ActivityRecorder
from gateway.services.api_key import ApiKeyService
from gateway.services.probe import ProbeService

logger = structlog.get_logger()


@dataclass(frozen=True)
class Principal:
    """Authenticated caller of the management API."""

    name: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@lru_cache
def get_executor() -> QueryExecutor:
    """Get cached executor instance."""
    return HttpQueryExecutor(get_settings().executor)


async def get_probe_service(
    executor: Annotated[QueryExecutor, Depends(get_executor)],
) -> ProbeService:
    return ProbeService(executor, get_settings().probe)


async def get_lifecycle_coordinator(
    session: Annotated[AsyncSession, Depends(get_session_dependency)],
) -> LifecycleCoordinator:
    """Get LifecycleCoordinator bound to the request's session."""
    return LifecycleCoordinator(session)


async def get_activity_recorder(
    session: Annotated[AsyncSession, Depends(get_session_dependency)],
) -> ActivityRecorder:
    return ActivityRecorder(session)


def authenticate(request: Request) -> Principal:
    """Authenticate request and return the calling principal.

    Authentication flow:
    1. If Bearer token provided:
       a. If principals are configured → match by token hash
       b. Else if allow_anonymous → anonymous principal
       c. Otherwise → 401
    2. If no token and allow_anonymous → anonymous principal, named by X-Actor
    3. Otherwise → 401 Unauthorized

    Raises:
        UnauthorizedError: If authentication fails
    """
    security = get_settings().security
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[7:]

        if security.principals:
            token_hash = ApiKeyService.hash_key(token)
            for principal in security.principals:
                expected = principal.token_hash or ApiKeyService.hash_key(principal.token)
                if hmac.compare_digest(token_hash, expected):
                    logger.debug("auth.success", principal=principal.name, role=principal.role.value)
                    return Principal(name=principal.name, role=principal.role)
            raise UnauthorizedError("Invalid credentials")

        if security.allow_anonymous:
            return _anonymous(request)
        raise UnauthorizedError("Authentication required")

    if security.allow_anonymous:
        return _anonymous(request)

    raise UnauthorizedError("Authentication required")


def _anonymous(request: Request) -> Principal:
    security = get_settings().security
    name = request.headers.get("X-Actor") or "anonymous"
    return Principal(name=name, role=security.anonymous_role)


def require_admin(
    principal: Annotated[Principal, Depends(authenticate)],
) -> Principal:
    """Reject callers without the admin role.

    Raises:
        ForbiddenError: If the principal is not an admin
    """
    if not principal.is_admin:
        raise ForbiddenError(
            "Admin role required",
            principal=principal.name,
            role=principal.role.value,
        )
    return principal


# Type aliases for cleaner dependency injection
CoordinatorDep = Annotated[LifecycleCoordinator, Depends(get_lifecycle_coordinator)]
ActivityRecorderDep = Annotated[ActivityRecorder, Depends(get_activity_recorder)]
ProbeServiceDep = Annotated[ProbeService, Depends(get_probe_service)]
AuthDep = Annotated[Principal, Depends(authenticate)]
AdminDep = Annotated[Principal, Depends(require_admin)]
