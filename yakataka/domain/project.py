"""Project aggregate: columns, cards and card dependencies.

State is rebuilt by folding the project stream. Every command validates
against the current state, then appends one or more events; each appended
event is folded in before the next one is built, so cascades (column and
card deletion) see the state left by the previous step.
"""

import logging
from collections.abc import Callable
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from yakataka.errors import InvalidOperationError, NotFoundError
from yakataka.events.replay import fold
from yakataka.events.store import EventStore
from yakataka.models import (
    DEFAULT_COLUMN_NAMES,
    SOURCE_KEY,
    Card,
    CardAddedPayload,
    CardDeletedPayload,
    CardMovedPayload,
    CardUpdatedPayload,
    Column,
    ColumnAddedPayload,
    ColumnDeletedPayload,
    ColumnMovedPayload,
    ColumnRenamedPayload,
    DependencyAddedPayload,
    DependencyRemovedPayload,
    NewEvent,
    Project,
    ProjectCreatedPayload,
    ProjectDeletedPayload,
    ProjectDescriptionUpdatedPayload,
    ProjectRenamedPayload,
    StoredEvent,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class CardState(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    column_id: str
    title: str
    description: str = ""
    position: int
    dependencies: tuple[str, ...] = ()


class ColumnState(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    project_id: str
    name: str
    position: int


class ProjectState(BaseModel):
    """Projected project. Transitions return new instances with rebuilt maps."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    workspace_id: str = ""
    name: str = ""
    description: str = ""
    deleted: bool = False
    columns: dict[str, ColumnState] = Field(default_factory=dict)
    cards: dict[str, CardState] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def _with_column(state: ProjectState, column: ColumnState) -> ProjectState:
    return state.model_copy(update={"columns": {**state.columns, column.id: column}})


def _with_card(state: ProjectState, card: CardState) -> ProjectState:
    return state.model_copy(update={"cards": {**state.cards, card.id: card}})


def _project_created(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ProjectCreatedPayload.model_validate(event.event_data)
    return state.model_copy(update={
        "id": payload.project_id,
        "workspace_id": payload.workspace_id,
        "name": payload.name,
        "description": payload.description,
    })


def _project_renamed(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ProjectRenamedPayload.model_validate(event.event_data)
    return state.model_copy(update={"name": payload.name})


def _project_description_updated(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ProjectDescriptionUpdatedPayload.model_validate(event.event_data)
    return state.model_copy(update={"description": payload.description})


def _project_deleted(state: ProjectState, event: StoredEvent) -> ProjectState:
    return state.model_copy(update={"deleted": True})


def _column_added(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ColumnAddedPayload.model_validate(event.event_data)
    return _with_column(state, ColumnState(
        id=payload.column_id,
        project_id=state.id,
        name=payload.name,
        position=payload.position,
    ))


def _column_renamed(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ColumnRenamedPayload.model_validate(event.event_data)
    column = state.columns.get(payload.column_id)
    if column is None:
        return state
    return _with_column(state, column.model_copy(update={"name": payload.name}))


def _column_moved(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ColumnMovedPayload.model_validate(event.event_data)
    column = state.columns.get(payload.column_id)
    if column is None:
        return state
    return _with_column(state, column.model_copy(update={"position": payload.position}))


def _column_deleted(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = ColumnDeletedPayload.model_validate(event.event_data)
    columns = {k: v for k, v in state.columns.items() if k != payload.column_id}
    return state.model_copy(update={"columns": columns})


def _card_added(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = CardAddedPayload.model_validate(event.event_data)
    return _with_card(state, CardState(
        id=payload.card_id,
        column_id=payload.column_id,
        title=payload.title,
        description=payload.description,
        position=payload.position,
    ))


def _card_updated(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = CardUpdatedPayload.model_validate(event.event_data)
    card = state.cards.get(payload.card_id)
    if card is None:
        return state
    changes = {}
    if payload.title is not None:
        changes["title"] = payload.title
    if payload.description is not None:
        changes["description"] = payload.description
    return _with_card(state, card.model_copy(update=changes))


def _card_moved(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = CardMovedPayload.model_validate(event.event_data)
    card = state.cards.get(payload.card_id)
    if card is None:
        return state
    return _with_card(state, card.model_copy(update={
        "column_id": payload.column_id,
        "position": payload.position,
    }))


def _card_deleted(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = CardDeletedPayload.model_validate(event.event_data)
    cards = {k: v for k, v in state.cards.items() if k != payload.card_id}
    return state.model_copy(update={"cards": cards})


def _dependency_added(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = DependencyAddedPayload.model_validate(event.event_data)
    card = state.cards.get(payload.card_id)
    if card is None or payload.depends_on_card_id in card.dependencies:
        return state
    return _with_card(state, card.model_copy(update={
        "dependencies": (*card.dependencies, payload.depends_on_card_id),
    }))


def _dependency_removed(state: ProjectState, event: StoredEvent) -> ProjectState:
    payload = DependencyRemovedPayload.model_validate(event.event_data)
    card = state.cards.get(payload.card_id)
    if card is None:
        return state
    return _with_card(state, card.model_copy(update={
        "dependencies": tuple(
            d for d in card.dependencies if d != payload.depends_on_card_id
        ),
    }))


PROJECT_TRANSITIONS = {
    "ProjectCreated": _project_created,
    "ProjectRenamed": _project_renamed,
    "ProjectDescriptionUpdated": _project_description_updated,
    "ProjectDeleted": _project_deleted,
    "ColumnAdded": _column_added,
    "ColumnRenamed": _column_renamed,
    "ColumnMoved": _column_moved,
    "ColumnDeleted": _column_deleted,
    "CardAdded": _card_added,
    "CardUpdated": _card_updated,
    "CardMoved": _card_moved,
    "CardDeleted": _card_deleted,
    "DependencyAdded": _dependency_added,
    "DependencyRemoved": _dependency_removed,
}


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


def _new_id() -> str:
    return str(uuid4())


def _card_snapshot(card: CardState) -> Card:
    return Card(
        id=card.id,
        column_id=card.column_id,
        title=card.title,
        description=card.description,
        position=card.position,
        dependencies=list(card.dependencies),
    )


class ProjectAggregate:
    """Validates commands against the projected state and appends their events."""

    def __init__(
        self,
        store: EventStore,
        project_id: str,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._store = store
        self.project_id = project_id
        self._new_id = id_factory
        self._state = ProjectState()
        self._version = 0

    @property
    def state(self) -> ProjectState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    async def load(self) -> "ProjectAggregate":
        events = await self._store.get_events("project", self.project_id)
        self._state = fold(ProjectState(), events, PROJECT_TRANSITIONS)
        self._version = events[-1].version if events else 0
        return self

    async def _append(
        self,
        event_type: str,
        payload: BaseModel,
        source: str | None = None,
        exclude_none: bool = False,
    ) -> None:
        event_data = payload.model_dump(exclude_none=exclude_none)
        if source:
            event_data[SOURCE_KEY] = source
        stored = await self._store.append(
            NewEvent(
                stream_type="project",
                stream_id=self.project_id,
                event_type=event_type,
                event_data=event_data,
                version=self._version + 1,
            )
        )
        self._state = fold(self._state, [stored], PROJECT_TRANSITIONS)
        self._version = stored.version

    def _require_column(self, column_id: str) -> ColumnState:
        column = self._state.columns.get(column_id)
        if column is None:
            raise NotFoundError("column", column_id)
        return column

    def _require_card(self, card_id: str) -> CardState:
        card = self._state.cards.get(card_id)
        if card is None:
            raise NotFoundError("card", card_id)
        return card

    def _cards_in_column(self, column_id: str, exclude: str | None = None) -> list[CardState]:
        return [
            c for c in self._state.cards.values()
            if c.column_id == column_id and c.id != exclude
        ]

    # -- Project commands --

    async def create(self, workspace_id: str, name: str, description: str = "") -> Project:
        """Emit ProjectCreated followed by one ColumnAdded per default column."""
        await self._append("ProjectCreated", ProjectCreatedPayload(
            project_id=self.project_id,
            workspace_id=workspace_id,
            name=name,
            description=description,
        ))
        for position, column_name in enumerate(DEFAULT_COLUMN_NAMES):
            await self._append("ColumnAdded", ColumnAddedPayload(
                column_id=self._new_id(), name=column_name, position=position,
            ))
        logger.info("Created project %s in workspace %s", self.project_id, workspace_id)
        return self.to_project()

    async def rename(self, name: str) -> Project:
        await self._append("ProjectRenamed", ProjectRenamedPayload(name=name))
        return self.to_project()

    async def update_description(self, description: str) -> Project:
        await self._append(
            "ProjectDescriptionUpdated",
            ProjectDescriptionUpdatedPayload(description=description),
        )
        return self.to_project()

    async def delete(self) -> None:
        """Soft delete. Columns and cards are left as they are."""
        await self._append("ProjectDeleted", ProjectDeletedPayload())
        logger.info("Deleted project %s", self.project_id)

    # -- Column commands --

    async def add_column(self, name: str, position: int | None = None) -> Column:
        column_id = self._new_id()
        if position is None:
            position = len(self._state.columns)
        await self._append("ColumnAdded", ColumnAddedPayload(
            column_id=column_id, name=name, position=position,
        ))
        return self.get_column(column_id)

    async def rename_column(self, column_id: str, name: str) -> Column:
        self._require_column(column_id)
        await self._append("ColumnRenamed", ColumnRenamedPayload(column_id=column_id, name=name))
        return self.get_column(column_id)

    async def move_column(self, column_id: str, position: int) -> Column:
        """Store the requested position as given; siblings are not renumbered."""
        self._require_column(column_id)
        await self._append("ColumnMoved", ColumnMovedPayload(
            column_id=column_id, position=position,
        ))
        return self.get_column(column_id)

    async def delete_column(self, column_id: str) -> None:
        """Move the column's cards to the lowest-position column, then delete it.

        If the column being deleted is itself the lowest-position column, its
        cards are not moved.
        """
        self._require_column(column_id)
        first = min(self._state.columns.values(), key=lambda c: c.position)
        if first.id != column_id:
            displaced = sorted(self._cards_in_column(column_id), key=lambda c: c.position)
            if displaced:
                logger.info(
                    "Moving %d cards from column %s to %s",
                    len(displaced), column_id, first.id,
                )
            for card in displaced:
                await self.move_card(card.id, first.id)
        await self._append("ColumnDeleted", ColumnDeletedPayload(column_id=column_id))

    # -- Card commands --

    async def add_card(
        self,
        column_id: str,
        title: str,
        description: str = "",
        position: int | None = None,
        source: str | None = None,
    ) -> Card:
        self._require_column(column_id)
        card_id = self._new_id()
        if position is None:
            position = len(self._cards_in_column(column_id))
        await self._append("CardAdded", CardAddedPayload(
            card_id=card_id,
            column_id=column_id,
            title=title,
            description=description,
            position=position,
        ), source)
        return self.get_card(card_id)

    async def update_card(
        self,
        card_id: str,
        title: str | None = None,
        description: str | None = None,
        source: str | None = None,
    ) -> Card:
        """Emit CardUpdated carrying only the fields that were given."""
        self._require_card(card_id)
        await self._append(
            "CardUpdated",
            CardUpdatedPayload(card_id=card_id, title=title, description=description),
            source,
            exclude_none=True,
        )
        return self.get_card(card_id)

    async def move_card(
        self,
        card_id: str,
        column_id: str,
        position: int | None = None,
        source: str | None = None,
    ) -> Card:
        self._require_card(card_id)
        self._require_column(column_id)
        if position is None:
            position = len(self._cards_in_column(column_id, exclude=card_id))
        await self._append("CardMoved", CardMovedPayload(
            card_id=card_id, column_id=column_id, position=position,
        ), source)
        return self.get_card(card_id)

    async def delete_card(self, card_id: str, source: str | None = None) -> None:
        """Remove every dependency edge pointing at the card, then delete it."""
        self._require_card(card_id)
        dependents = [c.id for c in self._state.cards.values() if card_id in c.dependencies]
        for dependent_id in dependents:
            await self.remove_dependency(dependent_id, card_id, source)
        await self._append("CardDeleted", CardDeletedPayload(card_id=card_id), source)

    # -- Dependency commands --

    async def add_dependency(
        self, card_id: str, depends_on_card_id: str, source: str | None = None
    ) -> Card:
        self._require_card(card_id)
        self._require_card(depends_on_card_id)
        if card_id == depends_on_card_id:
            raise InvalidOperationError("Card cannot depend on itself")
        await self._append("DependencyAdded", DependencyAddedPayload(
            card_id=card_id, depends_on_card_id=depends_on_card_id,
        ), source)
        return self.get_card(card_id)

    async def remove_dependency(
        self, card_id: str, depends_on_card_id: str, source: str | None = None
    ) -> Card:
        self._require_card(card_id)
        await self._append("DependencyRemoved", DependencyRemovedPayload(
            card_id=card_id, depends_on_card_id=depends_on_card_id,
        ), source)
        return self.get_card(card_id)

    # -- Queries --

    def exists(self) -> bool:
        return self._state.id != "" and not self._state.deleted

    def is_deleted(self) -> bool:
        return self._state.deleted

    def get_card(self, card_id: str) -> Card | None:
        card = self._state.cards.get(card_id)
        return _card_snapshot(card) if card is not None else None

    def get_column(self, column_id: str) -> Column | None:
        column = self._state.columns.get(column_id)
        if column is None:
            return None
        return Column(
            id=column.id,
            project_id=column.project_id,
            name=column.name,
            position=column.position,
            cards=[
                _card_snapshot(c)
                for c in sorted(self._cards_in_column(column.id), key=lambda c: c.position)
            ],
        )

    def get_dependencies(self, card_id: str) -> list[Card]:
        """Cards this card depends on. Ids that no longer resolve are skipped."""
        card = self._require_card(card_id)
        return [
            _card_snapshot(self._state.cards[d])
            for d in card.dependencies
            if d in self._state.cards
        ]

    def get_dependents(self, card_id: str) -> list[Card]:
        """Cards whose dependency lists include this card."""
        self._require_card(card_id)
        return [
            _card_snapshot(c)
            for c in self._state.cards.values()
            if card_id in c.dependencies
        ]

    def to_project(self) -> Project:
        """Nested snapshot: columns by position, each with its cards by position."""
        columns = sorted(self._state.columns.values(), key=lambda c: c.position)
        return Project(
            id=self._state.id,
            workspace_id=self._state.workspace_id,
            name=self._state.name,
            description=self._state.description,
            columns=[self.get_column(c.id) for c in columns],
        )


async def load_project(store: EventStore, project_id: str) -> ProjectAggregate:
    return await ProjectAggregate(store, project_id).load()


async def create_project(
    store: EventStore,
    workspace_id: str,
    name: str,
    description: str = "",
) -> Project:
    aggregate = ProjectAggregate(store, _new_id())
    return await aggregate.create(workspace_id, name, description)


async def get_projects_by_workspace(store: EventStore, workspace_id: str) -> list[Project]:
    """Live (not deleted) projects of a workspace, in creation order."""
    projects = []
    for project_id in await store.get_project_ids_by_workspace(workspace_id):
        aggregate = await load_project(store, project_id)
        if aggregate.exists():
            projects.append(aggregate.to_project())
    return projects
