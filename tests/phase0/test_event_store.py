"""Contract tests for the EventStore.

test_event_roundtrip is THE CANARY. If it ever fails, something
fundamental is broken. Stop everything and investigate.
"""

import sqlite3
from unittest.mock import AsyncMock, MagicMock

import pytest

from yakataka.errors import ConcurrencyConflictError, StorageFailureError
from yakataka.events.store import EventStore
from tests.fixtures import (
    create_test_project,
    make_new_event,
    make_project_created_event,
)


class TestEventStoreCanary:
    """THE CANARY TESTS. Must never break."""

    async def test_event_roundtrip(self, event_store):
        """Append a ProjectCreated event, get_events returns it with correct fields."""
        event = make_project_created_event(name="Canary Test")

        await event_store.append(event)
        events = await event_store.get_events("project", event.stream_id)

        assert len(events) == 1
        assert events[0].event_type == "ProjectCreated"
        assert events[0].event_data["name"] == "Canary Test"
        assert events[0].stream_id == event.stream_id
        assert events[0].version == 1

    async def test_event_roundtrip_multiple(self, event_store):
        """Append two events to one stream, both returned in version order."""
        created = make_project_created_event()
        renamed = make_new_event(created.stream_id, "ProjectRenamed", 2, name="Renamed")

        await event_store.append(created)
        await event_store.append(renamed)
        events = await event_store.get_events("project", created.stream_id)

        assert [e.event_type for e in events] == ["ProjectCreated", "ProjectRenamed"]
        assert [e.version for e in events] == [1, 2]
        assert events[1].event_data["name"] == "Renamed"


class TestEventStoreAppend:
    async def test_append_assigns_id_and_timestamp(self, event_store):
        stored = await event_store.append(make_project_created_event())
        assert isinstance(stored.id, int)
        assert stored.id > 0
        assert stored.timestamp.tzinfo is not None

    async def test_stored_event_matches_what_is_read_back(self, event_store):
        stored = await event_store.append(make_project_created_event())
        events = await event_store.get_events("project", stored.stream_id)
        assert events[0].id == stored.id
        assert events[0].timestamp == stored.timestamp

    async def test_duplicate_version_raises_conflict(self, event_store):
        event = make_project_created_event()
        await event_store.append(event)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await event_store.append(
                make_new_event(event.stream_id, "ProjectRenamed", 1, name="Late")
            )
        assert exc_info.value.version == 1
        assert exc_info.value.stream_id == event.stream_id

    async def test_conflict_does_not_mutate_stream(self, event_store):
        event = make_project_created_event(name="Original")
        await event_store.append(event)
        with pytest.raises(ConcurrencyConflictError):
            await event_store.append(
                make_new_event(event.stream_id, "ProjectRenamed", 1, name="Late")
            )

        events = await event_store.get_events("project", event.stream_id)
        assert len(events) == 1
        assert events[0].event_data["name"] == "Original"
        assert await event_store.get_latest_version("project", event.stream_id) == 1

    async def test_version_gap_raises_conflict(self, event_store):
        event = make_project_created_event()
        await event_store.append(event)
        with pytest.raises(ConcurrencyConflictError):
            await event_store.append(
                make_new_event(event.stream_id, "ProjectRenamed", 3, name="Skip")
            )
        assert await event_store.get_latest_version("project", event.stream_id) == 1

    async def test_first_event_must_be_version_one(self, event_store):
        with pytest.raises(ConcurrencyConflictError):
            await event_store.append(make_project_created_event(version=2))
        assert await event_store.get_events("project", "anything") == []

    async def test_payload_preserved_as_json(self, event_store):
        event = make_new_event(
            "p1", "ProjectCreated", 1,
            project_id="p1", workspace_id="ws", name="N", description="",
            _source="mcp", nested={"key": ["a", "b"]},
        )
        await event_store.append(event)
        events = await event_store.get_events("project", "p1")
        assert events[0].event_data["_source"] == "mcp"
        assert events[0].source == "mcp"
        assert events[0].event_data["nested"] == {"key": ["a", "b"]}

    async def test_io_failure_is_storage_failure(self):
        db = MagicMock()
        db.execute = AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error"))
        store = EventStore(db)
        with pytest.raises(StorageFailureError) as exc_info:
            await store.append(make_project_created_event())
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)

    async def test_read_failure_is_storage_failure(self):
        db = MagicMock()
        db.fetchall = AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error"))
        store = EventStore(db)
        with pytest.raises(StorageFailureError):
            await store.get_events("project", "p1")


class TestEventStoreQueries:
    async def test_get_events_filters_by_stream(self, event_store):
        a = make_project_created_event(name="A")
        b = make_project_created_event(name="B")
        await event_store.append(a)
        await event_store.append(b)

        events_a = await event_store.get_events("project", a.stream_id)
        assert [e.event_data["name"] for e in events_a] == ["A"]

    async def test_stream_type_is_part_of_the_key(self, event_store):
        await event_store.append(make_new_event(
            "shared-id", "WorkspaceCreated", 1, stream_type="workspace",
            workspace_id="shared-id",
        ))
        await event_store.append(make_project_created_event(project_id="shared-id"))

        assert len(await event_store.get_events("workspace", "shared-id")) == 1
        assert len(await event_store.get_events("project", "shared-id")) == 1

    async def test_get_events_empty_for_unknown_stream(self, event_store):
        assert await event_store.get_events("project", "nonexistent") == []

    async def test_latest_version_zero_for_unknown_stream(self, event_store):
        assert await event_store.get_latest_version("workspace", "nonexistent") == 0

    async def test_latest_version_tracks_appends(self, event_store):
        aggregate = await create_test_project(event_store)
        assert await event_store.get_latest_version("project", aggregate.project_id) == 4

    async def test_project_ids_by_workspace(self, event_store):
        p1 = make_project_created_event(workspace_id="ws-a")
        p2 = make_project_created_event(workspace_id="ws-b")
        p3 = make_project_created_event(workspace_id="ws-a")
        for e in (p1, p2, p3):
            await event_store.append(e)

        ids = await event_store.get_project_ids_by_workspace("ws-a")
        assert ids == [p1.stream_id, p3.stream_id]


class TestEventStoreBroadcast:
    async def test_project_events_are_broadcast(self, event_store, broadcaster):
        received = []
        broadcaster.add_listener("l1", "p1", received.append)

        await event_store.append(make_project_created_event(project_id="p1"))

        assert len(received) == 1
        assert received[0]["type"] == "ProjectCreated"
        assert received[0]["version"] == 1

    async def test_workspace_events_are_not_broadcast(self, event_store, broadcaster):
        received = []
        broadcaster.add_listener("l1", "w1", received.append)

        await event_store.append(make_new_event(
            "w1", "WorkspaceCreated", 1, stream_type="workspace", workspace_id="w1",
        ))

        assert received == []

    async def test_rejected_append_is_not_broadcast(self, event_store, broadcaster):
        received = []
        broadcaster.add_listener("l1", "p1", received.append)
        await event_store.append(make_project_created_event(project_id="p1"))
        with pytest.raises(ConcurrencyConflictError):
            await event_store.append(make_new_event("p1", "ProjectRenamed", 1, name="x"))
        assert len(received) == 1

    async def test_store_without_broadcaster(self, db):
        store = EventStore(db)
        stored = await store.append(make_project_created_event())
        assert stored.version == 1
