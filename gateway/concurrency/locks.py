"""Endpoint-level in-memory locks.

Every lifecycle operation touching an endpoint (status change, key
generate/revoke/replace/delete, endpoint delete) runs under the endpoint's
lock, so two callers in the same process never interleave on one endpoint.

Note: These locks only work within a single process. Across instances the
row lock (SELECT ... FOR UPDATE) and the unique index on live keys apply.
"""

from __future__ import annotations

import asyncio

# Key: endpoint_id, Value: asyncio.Lock
_endpoint_locks: dict[str, asyncio.Lock] = {}
_endpoint_locks_lock = asyncio.Lock()


async def get_endpoint_lock(endpoint_id: str) -> asyncio.Lock:
    """Get or create the lock for an endpoint.

    Args:
        endpoint_id: The endpoint ID to get lock for

    Returns:
        asyncio.Lock for the specified endpoint
    """
    async with _endpoint_locks_lock:
        if endpoint_id not in _endpoint_locks:
            _endpoint_locks[endpoint_id] = asyncio.Lock()
        return _endpoint_locks[endpoint_id]


async def cleanup_endpoint_lock(endpoint_id: str) -> None:
    """Drop the lock of a deleted endpoint."""
    async with _endpoint_locks_lock:
        _endpoint_locks.pop(endpoint_id, None)


def get_lock_count() -> int:
    """Get current number of locks (for testing/metrics)."""
    return len(_endpoint_locks)
