"""In-process concurrency helpers."""

from gateway.concurrency.locks import (
    cleanup_endpoint_lock,
    get_endpoint_lock,
    get_lock_count,
)

__all__ = ["cleanup_endpoint_lock", "get_endpoint_lock", "get_lock_count"]
