"""Yakataka FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from yakataka.boards.router import get_board_service, get_broadcaster, get_settings
from yakataka.boards.router import router as boards_router
from yakataka.boards.service import BoardService
from yakataka.config import load_settings
from yakataka.db.connection import Database
from yakataka.events.broadcaster import EventBroadcaster
from yakataka.events.store import EventStore

settings = load_settings()
logging.getLogger("yakataka").setLevel(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database and broadcaster lifecycle and service wiring."""
    db = await Database.connect(settings.db_path)

    broadcaster = EventBroadcaster()
    broadcaster.start()

    store = EventStore(db, broadcaster)
    service = BoardService(store)
    app.dependency_overrides[get_board_service] = lambda: service
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_settings] = lambda: settings

    app.state.db = db
    yield

    broadcaster.stop()
    await db.close()


app = FastAPI(
    title="Yakataka",
    description="Event-sourced kanban boards with card dependencies",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(boards_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
