"""Merge request models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import field_validator

from .base import GitLabModel, none_as
from .common import User


class MergeRequestState(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"
    LOCKED = "locked"
    MERGED = "merged"

    @classmethod
    def parse(cls, value: Any) -> MergeRequestState:
        """Case-insensitive lookup; anything unknown is treated as opened."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            lowered = value.lower()
            for state in cls:
                if state.value == lowered:
                    return state
        return cls.OPENED


class MergeRequest(GitLabModel):
    id: int
    iid: int
    project_id: int
    title: str = ""
    description: str | None = None
    state: MergeRequestState = MergeRequestState.OPENED
    source_branch: str = ""
    target_branch: str = ""
    author: User
    assignees: list[User] = []
    reviewers: list[User] = []
    merged_by: list[User] = []
    created_at: str = ""
    updated_at: str = ""
    merged_at: str | None = None
    closed_at: str | None = None
    web_url: str = ""
    draft: bool = False
    work_in_progress: bool = False
    has_conflicts: bool = False
    labels: list[str] = []
    upvotes: int = 0
    downvotes: int = 0
    user_notes_count: int = 0
    force_remove_source_branch: bool = False

    _lists = field_validator("assignees", "reviewers", "labels", mode="before")(none_as(list))
    _flags = field_validator(
        "draft",
        "work_in_progress",
        "has_conflicts",
        "force_remove_source_branch",
        mode="before",
    )(none_as(False))
    _counts = field_validator("upvotes", "downvotes", "user_notes_count", mode="before")(
        none_as(0)
    )

    @field_validator("state", mode="before")
    @classmethod
    def _parse_state(cls, value: Any) -> MergeRequestState:
        return MergeRequestState.parse(value)

    @field_validator("merged_by", mode="before")
    @classmethod
    def _wrap_merged_by(cls, value: Any) -> list[Any]:
        # The API sends a single user object (or null); the domain keeps a 0/1 list.
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value


class CreateMergeRequestRequest(GitLabModel):
    source_branch: str
    target_branch: str
    title: str
    description: str | None = None
    assignee_id: int | None = None
    remove_source_branch: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
