"""Repository models: branches and commits."""

from __future__ import annotations

from pydantic import field_validator

from .base import GitLabModel, none_as


class Commit(GitLabModel):
    id: str = ""
    short_id: str = ""
    title: str = ""
    message: str = ""
    author_name: str = ""
    author_email: str = ""
    authored_date: str = ""
    committer_name: str = ""
    committer_email: str = ""
    committed_date: str = ""
    web_url: str = ""

    _strings = field_validator(
        "title",
        "message",
        "author_name",
        "author_email",
        "authored_date",
        "committer_name",
        "committer_email",
        "committed_date",
        "web_url",
        mode="before",
    )(none_as(""))


class Branch(GitLabModel):
    name: str = ""
    merged: bool = False
    protected: bool = False
    default: bool = False
    developers_can_push: bool = False
    developers_can_merge: bool = False
    can_push: bool = False
    web_url: str = ""
    commit: Commit | None = None

    _flags = field_validator(
        "merged",
        "protected",
        "default",
        "developers_can_push",
        "developers_can_merge",
        "can_push",
        mode="before",
    )(none_as(False))
