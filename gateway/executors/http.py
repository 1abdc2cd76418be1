"""HTTP query executor.

Talks to an external executor service:

    POST {base_url}/execute
    {"target_type": "query", "target": "SELECT ...",
     "parameters": [{"name": ..., "value": ...}],
     "pagination": {"limit": 10, "offset": 0} | null}

    200 -> {"rows": [...], "row_count": n, "duration_ms": n}
    4xx/5xx -> {"error": {"message": ...}} or {"message": ...}
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from gateway.config import ExecutorConfig
from gateway.errors import ExecutionError, RequestTimeoutError
from gateway.executors.base import (
    ExecutionResult,
    Pagination,
    ParameterBinding,
    QueryExecutor,
    TargetDescriptor,
)
from gateway.services.http import get_http_client

logger = structlog.get_logger()


def _error_message(response: httpx.Response) -> str:
    """Extract the executor's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"executor returned {response.status_code}"

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return f"executor returned {response.status_code}"


class HttpQueryExecutor(QueryExecutor):
    """Executor client over HTTP.

    Uses the shared pooled client when the app is running; an explicit
    ``client`` wins (tests pass one built on httpx.MockTransport).
    """

    def __init__(
        self,
        config: ExecutorConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._log = logger.bind(executor="http", base_url=config.base_url)

    def _headers(self) -> dict[str, str]:
        if self._config.api_token:
            return {"Authorization": f"Bearer {self._config.api_token}"}
        return {}

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        client = self._client or get_http_client()
        if client is not None:
            return await client.post(url, json=payload, headers=self._headers())

        # Fallback: temporary client outside the app lifespan
        async with httpx.AsyncClient(trust_env=False) as temp_client:
            return await temp_client.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self._config.read_timeout,
            )

    async def execute(
        self,
        target: TargetDescriptor,
        parameters: list[ParameterBinding],
        pagination: Pagination | None = None,
    ) -> ExecutionResult:
        if not self._config.base_url:
            raise ExecutionError("Query executor is not configured")

        url = f"{self._config.base_url.rstrip('/')}/execute"
        payload = {
            "target_type": target.type.value,
            "target": target.target,
            "parameters": [{"name": p.name, "value": p.value} for p in parameters],
            "pagination": (
                {"limit": pagination.limit, "offset": pagination.offset}
                if pagination
                else None
            ),
        }

        try:
            response = await self._post(url, payload)
        except httpx.TimeoutException:
            self._log.error("executor.timeout", target_type=target.type.value)
            raise RequestTimeoutError("Query executor timed out")
        except httpx.RequestError as e:
            self._log.error("executor.request_error", error=str(e))
            raise ExecutionError(f"Query executor unreachable: {e}")

        if response.status_code >= 400:
            message = _error_message(response)
            self._log.warning(
                "executor.failed",
                status=response.status_code,
                target_type=target.type.value,
                error=message,
            )
            raise ExecutionError(message, executor_status=response.status_code)

        data = response.json()
        return ExecutionResult(
            rows=data.get("rows") or [],
            row_count=data.get("row_count"),
            duration_ms=data.get("duration_ms"),
        )
