"""Shared test fixtures for gitlab-mr."""

from __future__ import annotations

from typing import Any

import pytest
import respx

from gitlab_mr.client import GitLabClient
from gitlab_mr.config import GitLabConfig
from gitlab_mr.notifications import NotificationKind

TEST_URL = "https://gitlab.example.com"
TEST_TOKEN = "test-token"
BASE = f"{TEST_URL}/api/v4"


class RecordingNotificationSink:
    def __init__(self) -> None:
        self.events: list[tuple[NotificationKind, str, str]] = []

    def notify(self, kind: NotificationKind, title: str, body: str) -> None:
        self.events.append((kind, title, body))

    def kinds(self) -> list[NotificationKind]:
        return [kind for kind, _, _ in self.events]


class FakeGit:
    def __init__(self, remote_url: str | None = None, branch: str | None = None) -> None:
        self.remote_url = remote_url
        self.branch = branch

    def get_current_remote_url(self) -> str | None:
        return self.remote_url

    def get_current_branch_name(self) -> str | None:
        return self.branch


def mr_json(iid: int, state: str = "opened", **overrides: Any) -> dict[str, Any]:
    data = {
        "id": 1000 + iid,
        "iid": iid,
        "project_id": 123,
        "title": f"MR {iid}",
        "description": None,
        "state": state,
        "source_branch": f"feature-{iid}",
        "target_branch": "main",
        "author": {"id": 1, "username": "alice", "name": "Alice"},
        "assignees": [],
        "reviewers": None,
        "merged_by": None,
        "created_at": "2024-01-01T10:00:00.000Z",
        "updated_at": "2024-01-02T10:00:00.000Z",
        "web_url": f"{TEST_URL}/group/project/-/merge_requests/{iid}",
        "labels": [],
    }
    data.update(overrides)
    return data


@pytest.fixture
def config() -> GitLabConfig:
    return GitLabConfig(url=TEST_URL, token=TEST_TOKEN)


@pytest.fixture
def client(config: GitLabConfig) -> GitLabClient:
    return GitLabClient(config)


@pytest.fixture
def mock_api() -> respx.MockRouter:
    with respx.mock(base_url=BASE, assert_all_called=False) as router:
        yield router


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()
