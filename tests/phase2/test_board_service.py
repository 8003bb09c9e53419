"""Tests for BoardService stream locking."""

import asyncio

import pytest

from yakataka.boards.schemas import CreateProjectRequest, PatchProjectRequest
from yakataka.errors import NotFoundError


class TestStreamLocks:
    async def test_unknown_project_leaves_no_lock(self, service, client):
        for i in range(50):
            resp = await client.get(f"/api/projects/nope-{i}")
            assert resp.status_code == 404
        assert service._locks == {}

    async def test_deleted_project_leaves_no_lock(self, service):
        project = await service.create_project("ws-1", CreateProjectRequest(name="Gone"))
        await service.delete_project(project.id)
        with pytest.raises(NotFoundError):
            await service.get_project(project.id)
        assert service._locks == {}

    async def test_workspace_access_leaves_no_lock(self, service):
        await service.get_workspace("ws-1")
        await service.list_projects("ws-2")
        assert service._locks == {}

    async def test_concurrent_commands_share_one_lock(self, service):
        project = await service.create_project("ws-1", CreateProjectRequest(name="Busy"))

        results = await asyncio.gather(*(
            service.update_project(project.id, PatchProjectRequest(name=f"name-{i}"))
            for i in range(10)
        ))

        assert {r.name for r in results} == {f"name-{i}" for i in range(10)}
        events = await service.get_project_events(project.id)
        assert [e.version for e in events] == list(range(1, 15))
        assert service._locks == {}

    async def test_lock_held_while_command_runs(self, service):
        project = await service.create_project("ws-1", CreateProjectRequest(name="Held"))

        async with service._project(project.id):
            assert service._locks[project.id].users == 1
            waiter = asyncio.create_task(service.get_project(project.id))
            await asyncio.sleep(0)
            assert service._locks[project.id].users == 2
            assert not waiter.done()

        assert (await waiter).id == project.id
        assert service._locks == {}
