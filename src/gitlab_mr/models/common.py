"""Common GitLab models shared across domains."""

from __future__ import annotations

from .base import GitLabModel


class User(GitLabModel):
    id: int
    username: str = ""
    name: str = ""
    state: str | None = None
    avatar_url: str | None = None
    web_url: str | None = None


class Member(User):
    access_level: int = 0
    expires_at: str | None = None


class ConnectionInfo(GitLabModel):
    """Identity returned by a successful connection test."""

    id: int = 0
    username: str = ""
    name: str = ""
