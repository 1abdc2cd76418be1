"""Global HTTP client manager.

Provides a shared httpx.AsyncClient with connection pooling for talking to
the query executor. Started and stopped by the FastAPI lifespan.
"""

from __future__ import annotations

import httpx
import structlog

from gateway.config import ExecutorConfig

logger = structlog.get_logger()


class HTTPClientManager:
    """Manages a shared httpx.AsyncClient with connection pooling.

    Usage:
        # In FastAPI lifespan
        await http_client_manager.startup(settings.executor)
        yield
        await http_client_manager.shutdown()

        # In code
        client = http_client_manager.client
    """

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._log = logger.bind(component="http_client")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client.

        Raises:
            RuntimeError: If client is not initialized (call startup first)
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialized. Call startup() first.")
        return self._client

    async def startup(self, config: ExecutorConfig | None = None) -> None:
        """Initialize the HTTP client with limits taken from executor config."""
        if self._client is not None:
            self._log.warning("http_client.already_started")
            return

        config = config or ExecutorConfig()
        limits = httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive_connections,
            keepalive_expiry=30.0,
        )
        timeout = httpx.Timeout(
            connect=config.connect_timeout,
            read=config.read_timeout,
            write=30.0,
            pool=10.0,
        )

        self._client = httpx.AsyncClient(limits=limits, timeout=timeout)

        self._log.info(
            "http_client.started",
            max_connections=config.max_connections,
            max_keepalive=config.max_keepalive_connections,
        )

    async def shutdown(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is None:
            return

        await self._client.aclose()
        self._client = None
        self._log.info("http_client.shutdown")


# Global singleton instance
http_client_manager = HTTPClientManager()


def get_http_client() -> httpx.AsyncClient | None:
    """Get the shared HTTP client, or None before startup (e.g. in tests)."""
    try:
        return http_client_manager.client
    except RuntimeError:
        return None
