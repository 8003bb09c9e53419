"""Canonical data structures and event types for Yakataka.

Defined once here, referenced everywhere else. Snapshot models are the
shapes handed to callers; event payloads are the type-specific content of
each event, and StoredEvent wraps them with stream metadata.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

StreamType = Literal["workspace", "project"]

SOURCE_KEY = "_source"

DEFAULT_COLUMN_NAMES = ("To Do", "In Progress", "Done")

# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class Workspace(BaseModel):
    id: str
    created_at: datetime


class Card(BaseModel):
    id: str
    column_id: str
    title: str
    description: str = ""
    position: int
    dependencies: list[str] = Field(default_factory=list)


class Column(BaseModel):
    id: str
    project_id: str
    name: str
    position: int
    cards: list[Card] = Field(default_factory=list)


class Project(BaseModel):
    id: str
    workspace_id: str
    name: str
    description: str = ""
    columns: list[Column] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Event payloads, one per event type
# ---------------------------------------------------------------------------


class WorkspaceCreatedPayload(BaseModel):
    workspace_id: str


class ProjectCreatedPayload(BaseModel):
    project_id: str
    workspace_id: str
    name: str
    description: str = ""


class ProjectRenamedPayload(BaseModel):
    name: str


class ProjectDescriptionUpdatedPayload(BaseModel):
    description: str


class ProjectDeletedPayload(BaseModel):
    pass


class ColumnAddedPayload(BaseModel):
    column_id: str
    name: str
    position: int


class ColumnRenamedPayload(BaseModel):
    column_id: str
    name: str


class ColumnMovedPayload(BaseModel):
    column_id: str
    position: int


class ColumnDeletedPayload(BaseModel):
    column_id: str


class CardAddedPayload(BaseModel):
    card_id: str
    column_id: str
    title: str
    description: str = ""
    position: int


class CardUpdatedPayload(BaseModel):
    """Only the fields present in the event are changed on replay."""

    card_id: str
    title: str | None = None
    description: str | None = None


class CardMovedPayload(BaseModel):
    card_id: str
    column_id: str
    position: int


class CardDeletedPayload(BaseModel):
    card_id: str


class DependencyAddedPayload(BaseModel):
    card_id: str
    depends_on_card_id: str


class DependencyRemovedPayload(BaseModel):
    card_id: str
    depends_on_card_id: str


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

WORKSPACE_EVENT_TYPES: dict[str, type[BaseModel]] = {
    "WorkspaceCreated": WorkspaceCreatedPayload,
}

PROJECT_EVENT_TYPES: dict[str, type[BaseModel]] = {
    "ProjectCreated": ProjectCreatedPayload,
    "ProjectRenamed": ProjectRenamedPayload,
    "ProjectDescriptionUpdated": ProjectDescriptionUpdatedPayload,
    "ProjectDeleted": ProjectDeletedPayload,
    "ColumnAdded": ColumnAddedPayload,
    "ColumnRenamed": ColumnRenamedPayload,
    "ColumnMoved": ColumnMovedPayload,
    "ColumnDeleted": ColumnDeletedPayload,
    "CardAdded": CardAddedPayload,
    "CardUpdated": CardUpdatedPayload,
    "CardMoved": CardMovedPayload,
    "CardDeleted": CardDeletedPayload,
    "DependencyAdded": DependencyAddedPayload,
    "DependencyRemoved": DependencyRemovedPayload,
}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class NewEvent(BaseModel):
    """An event as built by a command, before the store stamps it."""

    stream_type: StreamType
    stream_id: str
    event_type: str
    event_data: dict[str, Any] = Field(default_factory=dict)
    version: int = Field(ge=1)


class StoredEvent(NewEvent):
    """An event as persisted. Stored in the events table."""

    timestamp: datetime
    id: int | None = None  # assigned by DB on insert

    @property
    def source(self) -> str | None:
        return self.event_data.get(SOURCE_KEY)
