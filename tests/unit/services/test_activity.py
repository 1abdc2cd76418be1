"""Unit tests for ActivityRecorder."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from gateway.models.activity import ActivityType
from gateway.services.activity import ActivityRecorder


class TestActivityRecorder:
    async def test_record_and_list_newest_first(self, db_session: AsyncSession):
        recorder = ActivityRecorder(db_session)

        first = await recorder.record(
            ActivityType.TAG_CREATED, entity_type="tag", entity_id="tag-1", actor="alice"
        )
        second = await recorder.record(
            ActivityType.TAG_DELETED,
            entity_type="tag",
            entity_id="tag-1",
            entity_name="Finance",
            actor="bob",
            message="Detached from 0 endpoint(s)",
        )

        events = await recorder.list_recent(limit=10)

        assert [e.id for e in events] == [second.id, first.id]
        assert events[0].entity_name == "Finance"
        assert events[0].actor == "bob"

    async def test_filters(self, db_session: AsyncSession):
        recorder = ActivityRecorder(db_session)
        await recorder.record(
            ActivityType.ENDPOINT_CREATED, entity_type="endpoint", entity_id="ep-1", actor="a"
        )
        await recorder.record(
            ActivityType.ENDPOINT_CREATED, entity_type="endpoint", entity_id="ep-2", actor="a"
        )
        await recorder.record(
            ActivityType.ENDPOINT_DELETED, entity_type="endpoint", entity_id="ep-2", actor="a"
        )

        by_entity = await recorder.list_recent(entity_id="ep-2")
        by_type = await recorder.list_recent(types=[ActivityType.ENDPOINT_CREATED])
        limited = await recorder.list_recent(limit=1)

        assert {e.entity_id for e in by_entity} == {"ep-2"}
        assert len(by_entity) == 2
        assert {e.entity_id for e in by_type} == {"ep-1", "ep-2"}
        assert len(limited) == 1
