"""Shared test helpers."""

import itertools
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from httpx import AsyncClient

from yakataka.domain.project import ProjectAggregate
from yakataka.events.store import EventStore
from yakataka.models import NewEvent, StoredEvent


def sequential_ids(prefix: str = "id") -> Callable[[], str]:
    """Id factory yielding prefix-1, prefix-2, ... for readable assertions."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


def make_new_event(
    stream_id: str,
    event_type: str,
    version: int,
    stream_type: str = "project",
    **event_data: Any,
) -> NewEvent:
    """Create a NewEvent for appending straight to the store."""
    return NewEvent(
        stream_type=stream_type,
        stream_id=stream_id,
        event_type=event_type,
        event_data=event_data,
        version=version,
    )


def make_stored_event(
    event_type: str,
    version: int,
    stream_id: str = "project-1",
    stream_type: str = "project",
    **event_data: Any,
) -> StoredEvent:
    """Create a StoredEvent for feeding the replay fold directly."""
    return StoredEvent(
        stream_type=stream_type,
        stream_id=stream_id,
        event_type=event_type,
        event_data=event_data,
        version=version,
        timestamp=datetime(2025, 1, 1, tzinfo=UTC),
        id=version,
    )


def make_project_created_event(
    workspace_id: str = "ws-1",
    project_id: str | None = None,
    name: str = "Test Project",
    version: int = 1,
) -> NewEvent:
    project_id = project_id or str(uuid4())
    return make_new_event(
        project_id,
        "ProjectCreated",
        version,
        project_id=project_id,
        workspace_id=workspace_id,
        name=name,
        description="",
    )


async def create_test_project(
    store: EventStore,
    workspace_id: str = "ws-1",
    name: str = "Test Project",
    project_id: str = "project-1",
) -> ProjectAggregate:
    """Create a project whose default columns get ids id-1..id-3; later ids continue."""
    aggregate = ProjectAggregate(store, project_id, id_factory=sequential_ids("id"))
    await aggregate.create(workspace_id, name)
    return aggregate


def column_ids_by_name(aggregate: ProjectAggregate) -> dict[str, str]:
    return {c.name: c.id for c in aggregate.to_project().columns}


# -- API-level helpers --


async def create_api_project(
    client: AsyncClient,
    workspace_id: str = "ws-api",
    name: str = "API Project",
) -> dict:
    """Create a project via the API and return the response JSON."""
    resp = await client.post(
        f"/api/workspaces/{workspace_id}/projects",
        json={"name": name, "description": "made over HTTP"},
    )
    assert resp.status_code == 201
    return resp.json()


async def create_api_card(
    client: AsyncClient,
    project_id: str,
    column_id: str,
    title: str = "Card",
    **extra: Any,
) -> dict:
    resp = await client.post(
        f"/api/projects/{project_id}/columns/{column_id}/cards",
        json={"title": title, **extra},
    )
    assert resp.status_code == 201
    return resp.json()
