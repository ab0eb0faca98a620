"""Base model for GitLab API responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class GitLabModel(BaseModel):
    """Base model with common behavior for all GitLab API models."""

    model_config = {"extra": "ignore", "populate_by_name": True}


def none_as(default: Any):
    """Build a ``mode="before"`` validator body mapping JSON ``null`` to *default*."""

    def _convert(value: Any) -> Any:
        if value is None:
            return default() if callable(default) else default
        return value

    return _convert
