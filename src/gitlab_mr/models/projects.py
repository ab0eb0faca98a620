"""Project models."""

from __future__ import annotations

from .base import GitLabModel


class Project(GitLabModel):
    id: int
    name: str = ""
    name_with_namespace: str = ""
    path: str = ""
    path_with_namespace: str = ""
    web_url: str = ""
    default_branch: str | None = None
    ssh_url_to_repo: str | None = None
    http_url_to_repo: str | None = None
    created_at: str = ""
    last_activity_at: str = ""
