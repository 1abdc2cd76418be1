"""Database layer."""

from gateway.db.session import (
    close_db,
    get_async_session,
    get_session_dependency,
    init_db,
)

__all__ = [
    "close_db",
    "get_async_session",
    "get_session_dependency",
    "init_db",
]
