"""Request schemas for workspace, project, column, card and dependency endpoints."""

from pydantic import BaseModel, Field

# -- Projects --


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""


class PatchProjectRequest(BaseModel):
    """Fields to update on a project. Only fields present in the body are changed."""

    name: str | None = None
    description: str | None = None


# -- Columns --


class CreateColumnRequest(BaseModel):
    name: str = Field(min_length=1)
    position: int | None = None


class PatchColumnRequest(BaseModel):
    name: str | None = None
    position: int | None = None


# -- Cards --


class CreateCardRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    position: int | None = None


class PatchCardRequest(BaseModel):
    """Title/description emit CardUpdated; column_id/position emit CardMoved."""

    title: str | None = None
    description: str | None = None
    column_id: str | None = None
    position: int | None = None


# -- Dependencies --


class AddDependencyRequest(BaseModel):
    depends_on_card_id: str = Field(min_length=1)
