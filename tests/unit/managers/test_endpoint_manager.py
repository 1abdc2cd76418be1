"""Unit tests for EndpointManager.

Covers creation and validation, partial updates, lookup by reference and the
status state machine, using in-memory SQLite.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.errors import NotFoundError, PreconditionFailedError, ValidationError
from gateway.managers.api_key import ApiKeyManager
from gateway.managers.endpoint import EndpointManager
from gateway.models.activity import ActivityEvent, ActivityType
from gateway.models.endpoint import (
    EndpointPatch,
    EndpointSpec,
    EndpointStatus,
    EndpointType,
    HttpMethod,
    ParameterDefinition,
)


@pytest.fixture
def endpoint_manager(db_session: AsyncSession) -> EndpointManager:
    return EndpointManager(db_session)


@pytest.fixture
def key_manager(db_session: AsyncSession) -> ApiKeyManager:
    return ApiKeyManager(db_session)


def make_spec(**overrides) -> EndpointSpec:
    values = {
        "name": "Orders",
        "type": "query",
        "target": "SELECT * FROM orders WHERE region = ?",
        "method": "get",
        "parameters": [ParameterDefinition(name="region", required=True)],
    }
    values.update(overrides)
    return EndpointSpec(**values)


class TestCreate:
    """Endpoint creation."""

    async def test_create_starts_in_draft(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        assert endpoint.id.startswith("ep-")
        assert endpoint.status == EndpointStatus.DRAFT
        assert endpoint.type == EndpointType.QUERY
        assert endpoint.method == HttpMethod.GET
        assert endpoint.rate_limit == 100
        assert endpoint.created_by == "alice"
        assert endpoint.parameters[0]["name"] == "region"

    async def test_create_records_activity(
        self,
        endpoint_manager: EndpointManager,
        db_session: AsyncSession,
    ):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        result = await db_session.execute(
            select(ActivityEvent).where(ActivityEvent.entity_id == endpoint.id)
        )
        events = list(result.scalars().all())
        assert [e.type for e in events] == [ActivityType.ENDPOINT_CREATED]
        assert events[0].actor == "alice"

    async def test_create_reports_every_invalid_field(self, endpoint_manager: EndpointManager):
        spec = EndpointSpec(
            name=" ",
            type="view",
            target=None,
            method="PATCH",
            rate_limit=0,
            path="bad path!",
        )

        with pytest.raises(ValidationError) as exc_info:
            await endpoint_manager.create(spec, actor="alice")

        fields = {v.field for v in exc_info.value.violations}
        assert fields == {"name", "type", "target", "method", "rate_limit", "path"}

    async def test_create_rejects_duplicate_path(self, endpoint_manager: EndpointManager):
        await endpoint_manager.create(make_spec(path="orders"), actor="alice")

        with pytest.raises(ValidationError) as exc_info:
            await endpoint_manager.create(make_spec(path="orders"), actor="alice")

        assert [v.field for v in exc_info.value.violations] == ["path"]

    async def test_path_race_on_flush_is_validation_error(
        self,
        endpoint_manager: EndpointManager,
        db_session: AsyncSession,
    ):
        """A concurrent insert that slips past the lookup hits the unique index."""
        first = await endpoint_manager.create(make_spec(path="orders"), actor="alice")
        first_id = first.id
        await db_session.commit()

        with patch.object(endpoint_manager, "_check_path_unique", AsyncMock(return_value=[])):
            with pytest.raises(ValidationError) as exc_info:
                await endpoint_manager.create(make_spec(path="orders"), actor="bob")

        assert [v.field for v in exc_info.value.violations] == ["path"]
        assert (await endpoint_manager.get_by_ref("orders")).id == first_id

    async def test_blank_path_means_no_custom_path(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(path="  "), actor="alice")

        assert endpoint.path is None
        assert endpoint.public_path == endpoint.id


class TestLookup:
    """get / get_by_ref / list."""

    async def test_get_unknown_raises_not_found(self, endpoint_manager: EndpointManager):
        with pytest.raises(NotFoundError):
            await endpoint_manager.get("ep-missing")

    async def test_get_by_ref_resolves_id_and_path(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(path="orders"), actor="alice")

        assert (await endpoint_manager.get_by_ref(endpoint.id)).id == endpoint.id
        assert (await endpoint_manager.get_by_ref("orders")).id == endpoint.id

        with pytest.raises(NotFoundError):
            await endpoint_manager.get_by_ref("nope")

    async def test_list_filters_by_status_and_search(
        self,
        endpoint_manager: EndpointManager,
        key_manager: ApiKeyManager,
    ):
        orders = await endpoint_manager.create(make_spec(name="Orders"), actor="alice")
        await endpoint_manager.create(make_spec(name="Customers"), actor="alice")
        await key_manager.generate(orders.id, actor="alice")
        await endpoint_manager.set_status(orders.id, "active", actor="alice")

        items, total = await endpoint_manager.list(status=EndpointStatus.ACTIVE)
        assert total == 1
        assert [e.id for e in items] == [orders.id]

        items, total = await endpoint_manager.list(search="CUST")
        assert total == 1
        assert items[0].name == "Customers"

    async def test_count_by_status(
        self,
        endpoint_manager: EndpointManager,
    ):
        await endpoint_manager.create(make_spec(name="A"), actor="alice")
        await endpoint_manager.create(make_spec(name="B"), actor="alice")

        counts = await endpoint_manager.count_by_status()

        assert counts == {"draft": 2, "active": 0, "suspended": 0, "total": 2}


class TestUpdate:
    """Partial updates."""

    async def test_update_applies_only_given_fields(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(
            make_spec(description="all orders"), actor="alice"
        )

        updated = await endpoint_manager.update(
            endpoint.id,
            EndpointPatch(name="Orders v2", rate_limit=500),
            actor="bob",
        )

        assert updated.name == "Orders v2"
        assert updated.rate_limit == 500
        assert updated.description == "all orders"
        assert updated.updated_by == "bob"

    async def test_update_can_clear_description(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(
            make_spec(description="all orders"), actor="alice"
        )

        updated = await endpoint_manager.update(
            endpoint.id, EndpointPatch(description=None), actor="bob"
        )

        assert updated.description is None

    async def test_update_rejects_clearing_required_field(
        self,
        endpoint_manager: EndpointManager,
    ):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        with pytest.raises(ValidationError) as exc_info:
            await endpoint_manager.update(endpoint.id, EndpointPatch(target=None), actor="bob")

        assert [v.field for v in exc_info.value.violations] == ["target"]

    async def test_invalid_status_in_patch_applies_nothing(
        self,
        endpoint_manager: EndpointManager,
    ):
        """Activation without a key fails before the name is changed."""
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        with pytest.raises(PreconditionFailedError):
            await endpoint_manager.update(
                endpoint.id,
                EndpointPatch(name="Renamed", status="active"),
                actor="bob",
            )

        assert endpoint.name == "Orders"
        assert endpoint.status == EndpointStatus.DRAFT

    async def test_update_replaces_parameters(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        updated = await endpoint_manager.update(
            endpoint.id,
            EndpointPatch(
                parameters=[
                    ParameterDefinition(name="from_date", type="date", default="2024-01-01"),
                ]
            ),
            actor="bob",
        )

        assert updated.parameters == [
            {
                "name": "from_date",
                "type": "date",
                "required": False,
                "default": "2024-01-01",
                "description": None,
            }
        ]


class TestStatusTransitions:
    """Status state machine."""

    async def test_activate_requires_live_key(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        with pytest.raises(PreconditionFailedError) as exc_info:
            await endpoint_manager.set_status(endpoint.id, "active", actor="alice")

        assert exc_info.value.details["reason"] == "key_required"

    async def test_activate_with_key(
        self,
        endpoint_manager: EndpointManager,
        key_manager: ApiKeyManager,
    ):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")
        await key_manager.generate(endpoint.id, actor="alice")

        result = await endpoint_manager.set_status(endpoint.id, "active", actor="alice")

        assert result.status == EndpointStatus.ACTIVE

    async def test_draft_cannot_be_suspended(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        with pytest.raises(PreconditionFailedError):
            await endpoint_manager.set_status(endpoint.id, "suspended", actor="alice")

    async def test_same_status_is_noop(
        self,
        endpoint_manager: EndpointManager,
        db_session: AsyncSession,
    ):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        await endpoint_manager.set_status(endpoint.id, "draft", actor="alice")

        result = await db_session.execute(
            select(ActivityEvent).where(ActivityEvent.entity_id == endpoint.id)
        )
        assert [e.type for e in result.scalars().all()] == [ActivityType.ENDPOINT_CREATED]

    async def test_suspend_and_back_to_draft(
        self,
        endpoint_manager: EndpointManager,
        key_manager: ApiKeyManager,
    ):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")
        await key_manager.generate(endpoint.id, actor="alice")
        await endpoint_manager.set_status(endpoint.id, "active", actor="alice")

        await endpoint_manager.set_status(endpoint.id, "suspended", actor="alice")
        assert endpoint.status == EndpointStatus.SUSPENDED

        await endpoint_manager.set_status(endpoint.id, "draft", actor="alice")
        assert endpoint.status == EndpointStatus.DRAFT

    async def test_unknown_status_is_validation_error(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")

        with pytest.raises(ValidationError):
            await endpoint_manager.set_status(endpoint.id, "paused", actor="alice")


class TestRemove:
    async def test_remove_refuses_with_live_key(
        self,
        endpoint_manager: EndpointManager,
        key_manager: ApiKeyManager,
    ):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")
        await key_manager.generate(endpoint.id, actor="alice")

        with pytest.raises(PreconditionFailedError):
            await endpoint_manager.remove(endpoint, actor="alice")

    async def test_remove_without_key(self, endpoint_manager: EndpointManager):
        endpoint = await endpoint_manager.create(make_spec(), actor="alice")
        endpoint_id = endpoint.id

        await endpoint_manager.remove(endpoint, actor="alice")

        with pytest.raises(NotFoundError):
            await endpoint_manager.get(endpoint_id)
