"""FastAPI routes for workspaces, projects, columns, cards and dependencies."""

import json as json_module
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse

from yakataka.boards.schemas import (
    AddDependencyRequest,
    CreateCardRequest,
    CreateColumnRequest,
    CreateProjectRequest,
    PatchCardRequest,
    PatchColumnRequest,
    PatchProjectRequest,
)
from yakataka.boards.service import BoardService
from yakataka.config import Settings
from yakataka.errors import (
    ConcurrencyConflictError,
    InvalidOperationError,
    NotFoundError,
)
from yakataka.events.broadcaster import EventBroadcaster
from yakataka.models import Card, Column, Project, StoredEvent, Workspace

router = APIRouter(prefix="/api", tags=["boards"])


def get_board_service() -> BoardService:
    """Dependency placeholder, overridden in the app lifespan."""
    raise RuntimeError("BoardService not initialized")


def get_broadcaster() -> EventBroadcaster:
    """Dependency placeholder, overridden in the app lifespan."""
    raise RuntimeError("EventBroadcaster not initialized")


def get_settings() -> Settings:
    """Dependency placeholder, overridden in the app lifespan."""
    raise RuntimeError("Settings not initialized")


_STATUS_BY_ERROR: dict[type[Exception], int] = {
    NotFoundError: 404,
    InvalidOperationError: 400,
    ConcurrencyConflictError: 409,
}

_COMMAND_ERRORS = tuple(_STATUS_BY_ERROR)


def _http_error(e: Exception) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_ERROR[type(e)], detail=str(e))


# -- Workspaces --


@router.post("/workspaces", status_code=status.HTTP_201_CREATED)
async def create_workspace(
    service: BoardService = Depends(get_board_service),
) -> Workspace:
    return await service.create_workspace()


@router.get("/workspaces/{workspace_id}")
async def get_workspace(
    workspace_id: str,
    service: BoardService = Depends(get_board_service),
) -> Workspace:
    return await service.get_workspace(workspace_id)


@router.get("/workspaces/{workspace_id}/events")
async def get_workspace_events(
    workspace_id: str,
    limit: int | None = Query(default=None, ge=1),
    service: BoardService = Depends(get_board_service),
) -> list[StoredEvent]:
    return await service.get_workspace_events(workspace_id, limit)


@router.get("/workspaces/{workspace_id}/projects")
async def list_projects(
    workspace_id: str,
    service: BoardService = Depends(get_board_service),
) -> list[Project]:
    return await service.list_projects(workspace_id)


@router.post("/workspaces/{workspace_id}/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    workspace_id: str,
    request: CreateProjectRequest,
    service: BoardService = Depends(get_board_service),
) -> Project:
    return await service.create_project(workspace_id, request)


# -- Projects --


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    service: BoardService = Depends(get_board_service),
) -> Project:
    try:
        return await service.get_project(project_id)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.put("/projects/{project_id}")
async def update_project(
    project_id: str,
    request: PatchProjectRequest,
    service: BoardService = Depends(get_board_service),
) -> Project:
    try:
        return await service.update_project(project_id, request)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    service: BoardService = Depends(get_board_service),
) -> Response:
    try:
        await service.delete_project(project_id)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/events")
async def get_project_events(
    project_id: str,
    limit: int | None = Query(default=None, ge=1),
    service: BoardService = Depends(get_board_service),
) -> list[StoredEvent]:
    return await service.get_project_events(project_id, limit)


@router.get("/projects/{project_id}/events/stream", response_model=None)
async def stream_project_events(
    project_id: str,
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    return StreamingResponse(
        stream_project_sse(broadcaster, project_id, settings.sse_heartbeat_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def stream_project_sse(
    broadcaster: EventBroadcaster,
    project_id: str,
    heartbeat_seconds: float,
) -> AsyncIterator[str]:
    """Async generator that yields SSE-formatted project events until closed."""
    subscription = broadcaster.subscribe(project_id)
    try:
        connected = {"listener_id": subscription.listener_id, "project_id": project_id}
        yield f"event: connected\ndata: {json_module.dumps(connected)}\n\n"
        while True:
            try:
                message = await subscription.get(timeout=heartbeat_seconds)
            except TimeoutError:
                yield ":heartbeat\n\n"
                continue
            if message is None:
                break
            yield f"event: {message['type']}\ndata: {json_module.dumps(message)}\n\n"
    finally:
        subscription.close()


# -- Columns --


@router.post("/projects/{project_id}/columns", status_code=status.HTTP_201_CREATED)
async def add_column(
    project_id: str,
    request: CreateColumnRequest,
    service: BoardService = Depends(get_board_service),
) -> Column:
    try:
        return await service.add_column(project_id, request)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.put("/projects/{project_id}/columns/{column_id}")
async def update_column(
    project_id: str,
    column_id: str,
    request: PatchColumnRequest,
    service: BoardService = Depends(get_board_service),
) -> Column:
    try:
        return await service.update_column(project_id, column_id, request)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.delete(
    "/projects/{project_id}/columns/{column_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_column(
    project_id: str,
    column_id: str,
    service: BoardService = Depends(get_board_service),
) -> Response:
    try:
        await service.delete_column(project_id, column_id)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -- Cards --


@router.post(
    "/projects/{project_id}/columns/{column_id}/cards",
    status_code=status.HTTP_201_CREATED,
)
async def add_card(
    project_id: str,
    column_id: str,
    request: CreateCardRequest,
    x_source: str | None = Header(default=None),
    service: BoardService = Depends(get_board_service),
) -> Card:
    try:
        return await service.add_card(project_id, column_id, request, x_source)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.put("/projects/{project_id}/cards/{card_id}")
async def update_card(
    project_id: str,
    card_id: str,
    request: PatchCardRequest,
    x_source: str | None = Header(default=None),
    service: BoardService = Depends(get_board_service),
) -> Card:
    try:
        return await service.update_card(project_id, card_id, request, x_source)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.delete(
    "/projects/{project_id}/cards/{card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_card(
    project_id: str,
    card_id: str,
    x_source: str | None = Header(default=None),
    service: BoardService = Depends(get_board_service),
) -> Response:
    try:
        await service.delete_card(project_id, card_id, x_source)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/cards/{card_id}/events")
async def get_card_events(
    project_id: str,
    card_id: str,
    limit: int | None = Query(default=None, ge=1),
    service: BoardService = Depends(get_board_service),
) -> list[StoredEvent]:
    try:
        return await service.get_card_events(project_id, card_id, limit)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


# -- Dependencies --


@router.get("/projects/{project_id}/cards/{card_id}/dependencies")
async def get_dependencies(
    project_id: str,
    card_id: str,
    service: BoardService = Depends(get_board_service),
) -> list[Card]:
    try:
        return await service.get_dependencies(project_id, card_id)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.get("/projects/{project_id}/cards/{card_id}/dependents")
async def get_dependents(
    project_id: str,
    card_id: str,
    service: BoardService = Depends(get_board_service),
) -> list[Card]:
    try:
        return await service.get_dependents(project_id, card_id)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.post(
    "/projects/{project_id}/cards/{card_id}/dependencies",
    status_code=status.HTTP_201_CREATED,
)
async def add_dependency(
    project_id: str,
    card_id: str,
    request: AddDependencyRequest,
    x_source: str | None = Header(default=None),
    service: BoardService = Depends(get_board_service),
) -> Card:
    try:
        return await service.add_dependency(
            project_id, card_id, request.depends_on_card_id, x_source
        )
    except _COMMAND_ERRORS as e:
        raise _http_error(e)


@router.delete(
    "/projects/{project_id}/cards/{card_id}/dependencies/{depends_on_card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_dependency(
    project_id: str,
    card_id: str,
    depends_on_card_id: str,
    x_source: str | None = Header(default=None),
    service: BoardService = Depends(get_board_service),
) -> Response:
    try:
        await service.remove_dependency(project_id, card_id, depends_on_card_id, x_source)
    except _COMMAND_ERRORS as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
