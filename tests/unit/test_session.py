"""Tests for browsing sessions and the connection check."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import TEST_TOKEN, TEST_URL, FakeGit, mr_json
from gitlab_mr.models.merge_requests import MergeRequest, MergeRequestState
from gitlab_mr.notifications import NotificationKind
from gitlab_mr.result import ErrorKind
from gitlab_mr.session import TOKEN_HINT, MergeRequestSession, check_server_connection
from gitlab_mr.store import ConfigScope, ServerConfig, ServerConfigStore

REMOTE = "git@gitlab.example.com:group/project.git"
PROJECT = {"id": 123, "name": "project", "path_with_namespace": "group/project", "default_branch": "main"}


@pytest.fixture
def server() -> ServerConfig:
    return ServerConfig(id="s1", name="example", url=TEST_URL, token=TEST_TOKEN, is_default=True)


@pytest.fixture
def app_store(server) -> ServerConfigStore:
    store = ServerConfigStore(ConfigScope.APPLICATION)
    store.add(server)
    return store


@pytest.fixture
async def session(app_store, notifier):
    session = MergeRequestSession(app_store, ServerConfigStore(), FakeGit(REMOTE, "feature-1"), notifier)
    yield session
    await session.aclose()


@pytest.fixture
def project_api(mock_api):
    mock_api.get("/projects/group%2Fproject").mock(return_value=httpx.Response(200, json=PROJECT))
    return mock_api


class TestStart:
    async def test_no_server(self, notifier):
        session = MergeRequestSession(
            ServerConfigStore(ConfigScope.APPLICATION), ServerConfigStore(), FakeGit(REMOTE), notifier
        )
        result = await session.start()
        assert result.error_kind is ErrorKind.VALIDATION
        assert result.error == "No GitLab server configured"

    async def test_no_remote(self, app_store, notifier):
        session = MergeRequestSession(app_store, ServerConfigStore(), FakeGit(None), notifier)
        result = await session.start()
        assert result.error_kind is ErrorKind.VALIDATION
        assert "remote" in result.error
        await session.aclose()

    async def test_unknown_project(self, session, mock_api):
        mock_api.get("/projects/group%2Fproject").mock(
            return_value=httpx.Response(404, json={"message": "404 Project Not Found"})
        )
        result = await session.start()
        assert result.status_code == 404
        assert session.controller is None

    async def test_loads_first_page(self, session, project_api):
        route = project_api.get("/projects/123/merge_requests").mock(
            return_value=httpx.Response(200, json=[mr_json(1), mr_json(2)])
        )
        result = await session.start(state="opened", scope="assigned_to_me")
        assert result.success
        assert session.project.id == 123
        assert [mr.iid for mr in session.controller.items] == [1, 2]
        params = route.calls.last.request.url.params
        assert params["state"] == "opened"
        assert params["scope"] == "assigned_to_me"
        assert params["per_page"] == "100"

    async def test_actions_require_start(self, session):
        with pytest.raises(RuntimeError, match="Session not started"):
            session.create_form()


class TestActions:
    @pytest.fixture
    async def started(self, session, project_api):
        project_api.get("/projects/123/merge_requests").mock(
            side_effect=[
                httpx.Response(200, json=[mr_json(1), mr_json(2)]),
                httpx.Response(200, json=[mr_json(1)]),
            ]
        )
        await session.start(state="opened")
        return session

    async def test_close_reruns_filter(self, started, project_api, notifier):
        project_api.put("/projects/123/merge_requests/2").mock(
            return_value=httpx.Response(200, json=mr_json(2, state="closed"))
        )
        mr = started.controller.find(2)
        result = await started.close_merge_request(mr)
        assert result.data.state is MergeRequestState.CLOSED
        assert [m.iid for m in started.controller.items] == [1]
        assert notifier.events[-1][0] is NotificationKind.SUCCESS

    async def test_merge_uses_force_remove_flag(self, started, project_api):
        route = project_api.put("/projects/123/merge_requests/2/merge").mock(
            return_value=httpx.Response(200, json=mr_json(2, state="merged"))
        )
        mr = MergeRequest.model_validate(mr_json(2, force_remove_source_branch=True))
        await started.merge_merge_request(mr)
        assert json.loads(route.calls.last.request.content) == {"should_remove_source_branch": True}

    async def test_merge_override(self, started, project_api):
        route = project_api.put("/projects/123/merge_requests/2/merge").mock(
            return_value=httpx.Response(200, json=mr_json(2, state="merged"))
        )
        mr = MergeRequest.model_validate(mr_json(2, force_remove_source_branch=True))
        await started.merge_merge_request(mr, remove_source_branch=False)
        assert json.loads(route.calls.last.request.content) == {}

    async def test_merge_failure_notifies(self, started, project_api, notifier):
        project_api.put("/projects/123/merge_requests/2/merge").mock(
            return_value=httpx.Response(406, json={"message": "Branch cannot be merged"})
        )
        result = await started.merge_merge_request(started.controller.find(2))
        assert not result.success
        assert notifier.events[-1] == (NotificationKind.ERROR, "Merge failed", "Branch cannot be merged")
        assert [m.iid for m in started.controller.items] == [1, 2]

    async def test_delete(self, started, project_api):
        project_api.delete("/projects/123/merge_requests/2").mock(return_value=httpx.Response(204))
        result = await started.delete_merge_request(started.controller.find(2))
        assert result.data is True
        assert started.controller.find(2) is None

    async def test_create_form_bound_to_project(self, started):
        form = started.create_form()
        assert form.project_id == "123"


class TestConnectionCheck:
    async def test_success(self, server, mock_api, notifier):
        mock_api.get("/user").mock(return_value=httpx.Response(200, json={"id": 1, "username": "alice"}))
        result = await check_server_connection(server, notifier)
        assert result.success
        kind, _, body = notifier.events[-1]
        assert kind is NotificationKind.SUCCESS
        assert "alice" in body

    async def test_unauthorized_adds_hint(self, server, mock_api, notifier):
        mock_api.get("/user").mock(return_value=httpx.Response(401, json={"message": "401 Unauthorized"}))
        result = await check_server_connection(server, notifier)
        assert result.status_code == 401
        kind, title, body = notifier.events[-1]
        assert kind is NotificationKind.ERROR
        assert body.endswith(TOKEN_HINT)

    async def test_server_error_has_no_hint(self, server, mock_api, notifier):
        mock_api.get("/user").mock(return_value=httpx.Response(500, text="down"))
        await check_server_connection(server, notifier)
        assert TOKEN_HINT not in notifier.events[-1][2]
