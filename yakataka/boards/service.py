"""Board service: the operations exposed to the HTTP layer.

Loads aggregates from the EventStore, checks that the project is live, and
runs the command. Commands on the same project stream are serialized within
this process; across processes the store's version check is the only guard.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from uuid import uuid4

from yakataka.boards.schemas import (
    CreateCardRequest,
    CreateColumnRequest,
    CreateProjectRequest,
    PatchCardRequest,
    PatchColumnRequest,
    PatchProjectRequest,
)
from yakataka.domain.project import (
    ProjectAggregate,
    create_project,
    get_projects_by_workspace,
    load_project,
)
from yakataka.domain.workspace import get_or_create_workspace
from yakataka.errors import NotFoundError
from yakataka.events.store import EventStore
from yakataka.models import Card, Column, Project, StoredEvent, Workspace

logger = logging.getLogger(__name__)


@dataclass
class _StreamLock:
    lock: asyncio.Lock
    users: int = 0


class BoardService:
    """Coordinates the event store and the aggregates for board CRUD."""

    def __init__(self, store: EventStore) -> None:
        self._store = store
        # Only streams with a command in flight or waiting have an entry.
        self._locks: dict[str, _StreamLock] = {}

    @asynccontextmanager
    async def _stream_lock(self, key: str) -> AsyncIterator[None]:
        """Serialize work on one stream. The entry is dropped once nobody holds or awaits it."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _StreamLock(asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @asynccontextmanager
    async def _project(self, project_id: str) -> AsyncIterator[ProjectAggregate]:
        """Load a live project while holding its stream lock."""
        async with self._stream_lock(project_id):
            aggregate = await load_project(self._store, project_id)
            if not aggregate.exists():
                raise NotFoundError("project", project_id)
            yield aggregate

    # -- Workspaces --

    async def create_workspace(self) -> Workspace:
        return await get_or_create_workspace(self._store, str(uuid4()))

    async def get_workspace(self, workspace_id: str) -> Workspace:
        """Workspaces are created on first access."""
        async with self._stream_lock(f"workspace:{workspace_id}"):
            return await get_or_create_workspace(self._store, workspace_id)

    async def get_workspace_events(
        self, workspace_id: str, limit: int | None = None
    ) -> list[StoredEvent]:
        return await self._store.get_workspace_events(workspace_id, limit)

    # -- Projects --

    async def list_projects(self, workspace_id: str) -> list[Project]:
        await self.get_workspace(workspace_id)
        return await get_projects_by_workspace(self._store, workspace_id)

    async def create_project(
        self, workspace_id: str, request: CreateProjectRequest
    ) -> Project:
        await self.get_workspace(workspace_id)
        return await create_project(
            self._store, workspace_id, request.name, request.description
        )

    async def get_project(self, project_id: str) -> Project:
        async with self._project(project_id) as aggregate:
            return aggregate.to_project()

    async def update_project(
        self, project_id: str, request: PatchProjectRequest
    ) -> Project:
        async with self._project(project_id) as aggregate:
            if request.name is not None:
                await aggregate.rename(request.name)
            if request.description is not None:
                await aggregate.update_description(request.description)
            return aggregate.to_project()

    async def delete_project(self, project_id: str) -> None:
        async with self._project(project_id) as aggregate:
            await aggregate.delete()

    async def get_project_events(
        self, project_id: str, limit: int | None = None
    ) -> list[StoredEvent]:
        """Full project stream by version; with a limit, only the most recent."""
        events = await self._store.get_events("project", project_id)
        if limit is not None and limit > 0:
            return events[-limit:]
        return events

    # -- Columns --

    async def add_column(self, project_id: str, request: CreateColumnRequest) -> Column:
        async with self._project(project_id) as aggregate:
            return await aggregate.add_column(request.name, request.position)

    async def update_column(
        self, project_id: str, column_id: str, request: PatchColumnRequest
    ) -> Column:
        async with self._project(project_id) as aggregate:
            column = aggregate.get_column(column_id)
            if column is None:
                raise NotFoundError("column", column_id)
            if request.name is not None:
                column = await aggregate.rename_column(column_id, request.name)
            if request.position is not None:
                column = await aggregate.move_column(column_id, request.position)
            return column

    async def delete_column(self, project_id: str, column_id: str) -> None:
        async with self._project(project_id) as aggregate:
            await aggregate.delete_column(column_id)

    # -- Cards --

    async def add_card(
        self,
        project_id: str,
        column_id: str,
        request: CreateCardRequest,
        source: str | None = None,
    ) -> Card:
        async with self._project(project_id) as aggregate:
            return await aggregate.add_card(
                column_id, request.title, request.description, request.position, source
            )

    async def update_card(
        self,
        project_id: str,
        card_id: str,
        request: PatchCardRequest,
        source: str | None = None,
    ) -> Card:
        async with self._project(project_id) as aggregate:
            card = aggregate.get_card(card_id)
            if card is None:
                raise NotFoundError("card", card_id)
            if request.title is not None or request.description is not None:
                card = await aggregate.update_card(
                    card_id, request.title, request.description, source
                )
            if request.column_id is not None or request.position is not None:
                card = await aggregate.move_card(
                    card_id, request.column_id or card.column_id, request.position, source
                )
            return card

    async def delete_card(
        self, project_id: str, card_id: str, source: str | None = None
    ) -> None:
        async with self._project(project_id) as aggregate:
            await aggregate.delete_card(card_id, source)

    async def get_card_events(
        self, project_id: str, card_id: str, limit: int | None = None
    ) -> list[StoredEvent]:
        async with self._project(project_id) as aggregate:
            if aggregate.get_card(card_id) is None:
                raise NotFoundError("card", card_id)
        return await self._store.get_card_events(project_id, card_id, limit)

    # -- Dependencies --

    async def get_dependencies(self, project_id: str, card_id: str) -> list[Card]:
        async with self._project(project_id) as aggregate:
            return aggregate.get_dependencies(card_id)

    async def get_dependents(self, project_id: str, card_id: str) -> list[Card]:
        async with self._project(project_id) as aggregate:
            return aggregate.get_dependents(card_id)

    async def add_dependency(
        self,
        project_id: str,
        card_id: str,
        depends_on_card_id: str,
        source: str | None = None,
    ) -> Card:
        async with self._project(project_id) as aggregate:
            return await aggregate.add_dependency(card_id, depends_on_card_id, source)

    async def remove_dependency(
        self,
        project_id: str,
        card_id: str,
        depends_on_card_id: str,
        source: str | None = None,
    ) -> Card:
        async with self._project(project_id) as aggregate:
            return await aggregate.remove_dependency(card_id, depends_on_card_id, source)
