"""Unit tests for HttpQueryExecutor.

Uses httpx.MockTransport to stand in for the executor service.
"""

from __future__ import annotations

import json

import httpx
import pytest

from gateway.config import ExecutorConfig
from gateway.errors import ExecutionError, RequestTimeoutError
from gateway.executors.base import Pagination, ParameterBinding, TargetDescriptor
from gateway.executors.http import HttpQueryExecutor
from gateway.models.endpoint import EndpointType

CONFIG = ExecutorConfig(base_url="http://executor.test/", api_token="secret")
TARGET = TargetDescriptor(type=EndpointType.TABLE, target="orders")


def make_executor(handler, config: ExecutorConfig = CONFIG) -> HttpQueryExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpQueryExecutor(config, client=client)


class TestHttpQueryExecutor:
    async def test_request_shape_and_result(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"rows": [{"id": 1}], "row_count": 1, "duration_ms": 3.5}
            )

        executor = make_executor(handler)
        result = await executor.execute(
            TARGET,
            [ParameterBinding("region", "EU")],
            Pagination(limit=10, offset=20),
        )

        assert seen["url"] == "http://executor.test/execute"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "target_type": "table",
            "target": "orders",
            "parameters": [{"name": "region", "value": "EU"}],
            "pagination": {"limit": 10, "offset": 20},
        }
        assert result.rows == [{"id": 1}]
        assert result.row_count == 1
        assert result.duration_ms == 3.5

    async def test_missing_row_count_defaults_to_rows(self):
        executor = make_executor(
            lambda request: httpx.Response(200, json={"rows": [{"a": 1}, {"a": 2}]})
        )

        result = await executor.execute(TARGET, [])

        assert result.row_count == 2
        assert result.duration_ms is None

    async def test_error_message_is_surfaced(self):
        executor = make_executor(
            lambda request: httpx.Response(
                400, json={"error": {"message": "syntax error at or near FROM"}}
            )
        )

        with pytest.raises(ExecutionError) as exc_info:
            await executor.execute(TARGET, [])

        assert exc_info.value.message == "syntax error at or near FROM"
        assert exc_info.value.details["executor_status"] == 400

    async def test_plain_text_error(self):
        executor = make_executor(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ExecutionError, match="boom"):
            await executor.execute(TARGET, [])

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(RequestTimeoutError):
            await make_executor(handler).execute(TARGET, [])

    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExecutionError) as exc_info:
            await make_executor(handler).execute(TARGET, [])

        assert not isinstance(exc_info.value, RequestTimeoutError)

    async def test_not_configured(self):
        executor = HttpQueryExecutor(ExecutorConfig())

        with pytest.raises(ExecutionError, match="not configured"):
            await executor.execute(TARGET, [])
