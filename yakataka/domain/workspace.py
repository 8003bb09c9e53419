"""Workspace aggregate: created once, lazily, and never changed afterwards."""

import logging
from typing import cast

from yakataka.events.replay import fold
from yakataka.events.store import EventStore
from yakataka.models import NewEvent, StoredEvent, Workspace, WorkspaceCreatedPayload

logger = logging.getLogger(__name__)


def _workspace_created(state: Workspace | None, event: StoredEvent) -> Workspace | None:
    payload = WorkspaceCreatedPayload.model_validate(event.event_data)
    return Workspace(id=payload.workspace_id, created_at=event.timestamp)


WORKSPACE_TRANSITIONS = {
    "WorkspaceCreated": _workspace_created,
}


class WorkspaceAggregate:
    def __init__(self, store: EventStore, workspace_id: str) -> None:
        self._store = store
        self.workspace_id = workspace_id
        self._state: Workspace | None = None
        self._version = 0

    @property
    def state(self) -> Workspace | None:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    def exists(self) -> bool:
        return self._state is not None

    async def load(self) -> "WorkspaceAggregate":
        events = await self._store.get_events("workspace", self.workspace_id)
        self._state = fold(None, events, WORKSPACE_TRANSITIONS)
        self._version = events[-1].version if events else 0
        return self

    async def create(self) -> Workspace:
        """Get-or-create. Appends WorkspaceCreated only if the workspace is absent."""
        if self._state is not None:
            return self._state

        payload = WorkspaceCreatedPayload(workspace_id=self.workspace_id)
        stored = await self._store.append(
            NewEvent(
                stream_type="workspace",
                stream_id=self.workspace_id,
                event_type="WorkspaceCreated",
                event_data=payload.model_dump(),
                version=self._version + 1,
            )
        )
        self._state = fold(self._state, [stored], WORKSPACE_TRANSITIONS)
        self._version = stored.version
        logger.info("Created workspace %s", self.workspace_id)
        return cast(Workspace, self._state)


async def get_or_create_workspace(store: EventStore, workspace_id: str) -> Workspace:
    aggregate = await WorkspaceAggregate(store, workspace_id).load()
    return await aggregate.create()


async def workspace_exists(store: EventStore, workspace_id: str) -> bool:
    aggregate = await WorkspaceAggregate(store, workspace_id).load()
    return aggregate.exists()
