"""API tests for endpoint invocation and probes."""

from __future__ import annotations

import httpx

from gateway.errors import ExecutionError
from gateway.executors.base import Pagination, ParameterBinding
from tests.fakes import FakeQueryExecutor


class TestInvoke:
    async def test_invoke_by_path_counts_usage(
        self,
        client: httpx.AsyncClient,
        fake_executor: FakeQueryExecutor,
        active_endpoint: dict,
    ):
        fake_executor.rows = [{"id": 1, "region": "EU"}]

        response = await client.get(
            "/v1/invoke/orders",
            params={"region": "EU", "limit": "5"},
            headers={"X-API-Key": active_endpoint["token"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["rows"] == [{"id": 1, "region": "EU"}]
        assert body["rowCount"] == 1
        call = fake_executor.calls[0]
        assert call["parameters"] == [ParameterBinding("region", "EU")]
        assert call["pagination"] == Pagination(limit=5, offset=0)

        key = (
            await client.get(f"/v1/endpoints/{active_endpoint['endpoint']['id']}/api_key")
        ).json()
        assert key["usageCount"] == 1
        assert key["lastUsedAt"] is not None

    async def test_invoke_by_id_with_bearer(
        self,
        client: httpx.AsyncClient,
        fake_executor: FakeQueryExecutor,
        active_endpoint: dict,
    ):
        endpoint_id = active_endpoint["endpoint"]["id"]

        response = await client.get(
            f"/v1/invoke/{endpoint_id}",
            params={"region": "US"},
            headers={"Authorization": f"Bearer {active_endpoint['token']}"},
        )

        assert response.status_code == 200
        assert fake_executor.calls[0]["pagination"] == Pagination(limit=1000, offset=0)

    async def test_missing_and_wrong_key(
        self,
        client: httpx.AsyncClient,
        active_endpoint: dict,
    ):
        response = await client.get("/v1/invoke/orders", params={"region": "EU"})
        assert response.status_code == 401

        response = await client.get(
            "/v1/invoke/orders",
            params={"region": "EU"},
            headers={"X-API-Key": "sk-gw-" + "0" * 64},
        )
        assert response.status_code == 401

    async def test_key_of_other_endpoint(
        self,
        client: httpx.AsyncClient,
        active_endpoint: dict,
    ):
        other = (
            await client.post(
                "/v1/endpoints",
                json={
                    "name": "Other",
                    "type": "query",
                    "target": "SELECT 1",
                    "generateApiKey": True,
                    "status": "active",
                },
            )
        ).json()

        response = await client.get(
            "/v1/invoke/orders",
            params={"region": "EU"},
            headers={"X-API-Key": other["token"]},
        )

        assert response.status_code == 403

    async def test_suspended_endpoint_is_forbidden(
        self,
        client: httpx.AsyncClient,
        active_endpoint: dict,
    ):
        endpoint_id = active_endpoint["endpoint"]["id"]
        await client.patch(f"/v1/endpoints/{endpoint_id}/status", json={"status": "suspended"})

        response = await client.get(
            "/v1/invoke/orders",
            params={"region": "EU"},
            headers={"X-API-Key": active_endpoint["token"]},
        )

        assert response.status_code == 403

    async def test_method_mismatch(
        self,
        client: httpx.AsyncClient,
        active_endpoint: dict,
    ):
        response = await client.post(
            "/v1/invoke/orders",
            json={"parameters": {"region": "EU"}},
            headers={"X-API-Key": active_endpoint["token"]},
        )

        assert response.status_code == 405

    async def test_missing_required_parameter(
        self,
        client: httpx.AsyncClient,
        fake_executor: FakeQueryExecutor,
        active_endpoint: dict,
    ):
        response = await client.get(
            "/v1/invoke/orders",
            headers={"X-API-Key": active_endpoint["token"]},
        )

        assert response.status_code == 400
        assert fake_executor.calls == []

    async def test_executor_failure_not_counted(
        self,
        client: httpx.AsyncClient,
        fake_executor: FakeQueryExecutor,
        active_endpoint: dict,
    ):
        fake_executor.set_exception(ExecutionError("warehouse unavailable"))

        response = await client.get(
            "/v1/invoke/orders",
            params={"region": "EU"},
            headers={"X-API-Key": active_endpoint["token"]},
        )

        assert response.status_code == 502
        key = (
            await client.get(f"/v1/endpoints/{active_endpoint['endpoint']['id']}/api_key")
        ).json()
        assert key["usageCount"] == 0

    async def test_revoked_key_rejected(
        self,
        client: httpx.AsyncClient,
        active_endpoint: dict,
    ):
        await client.post(f"/v1/api-keys/{active_endpoint['apiKey']['id']}/revoke")

        response = await client.get(
            "/v1/invoke/orders",
            params={"region": "EU"},
            headers={"X-API-Key": active_endpoint["token"]},
        )

        assert response.status_code == 401


class TestEndpointTest:
    async def test_draft_endpoint_can_be_tested(
        self,
        client: httpx.AsyncClient,
        fake_executor: FakeQueryExecutor,
    ):
        created = (
            await client.post(
                "/v1/endpoints",
                json={
                    "name": "Top customers",
                    "type": "stored_procedure",
                    "target": "sp_top_customers",
                    "parameters": [{"name": "n", "type": "integer", "default": 10}],
                },
            )
        ).json()["endpoint"]

        response = await client.post(f"/v1/endpoints/{created['id']}/test", json={})

        assert response.status_code == 200
        assert fake_executor.calls[0]["parameters"] == [ParameterBinding("n", 10)]


class TestProbe:
    async def test_probe_table(
        self,
        client: httpx.AsyncClient,
        fake_executor: FakeQueryExecutor,
    ):
        fake_executor.rows = [{"n": n} for n in range(30)]

        response = await client.post(
            "/v1/probe", json={"type": "table", "target": "orders", "offset": 25}
        )

        assert response.status_code == 200
        assert response.json()["rowCount"] == 5

    async def test_probe_validation(self, client: httpx.AsyncClient):
        response = await client.post("/v1/probe", json={"type": "query"})

        assert response.status_code == 400
        fields = [v["field"] for v in response.json()["error"]["details"]["violations"]]
        assert fields == ["target"]
