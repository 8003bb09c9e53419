"""Shared pytest fixtures for Yakataka tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from yakataka.boards.router import get_board_service, get_broadcaster, get_settings
from yakataka.boards.service import BoardService
from yakataka.config import Settings
from yakataka.db.connection import Database
from yakataka.events.broadcaster import EventBroadcaster
from yakataka.events.store import EventStore
from yakataka.main import app


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
def broadcaster():
    """Started broadcaster, stopped after the test."""
    b = EventBroadcaster()
    b.start()
    yield b
    b.stop()


@pytest.fixture
async def event_store(db, broadcaster):
    """EventStore backed by in-memory database, wired to the broadcaster."""
    return EventStore(db, broadcaster)


@pytest.fixture
async def service(event_store):
    return BoardService(event_store)


@pytest.fixture
async def client(service, broadcaster):
    """Async test client with in-memory DB wired into the app."""
    app.dependency_overrides[get_board_service] = lambda: service
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_settings] = lambda: Settings(sse_heartbeat_seconds=0.05)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
