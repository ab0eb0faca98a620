"""Ordering of branch choices offered when creating a merge request."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from .models.repositories import Branch

_MAINLINE = ("master", "main")


def commit_timestamp(branch: Branch) -> float:
    """Epoch seconds of the branch tip; unparsable or missing dates count as 0."""
    raw = branch.commit.committed_date if branch.commit else ""
    if not raw:
        return 0.0
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _sort_key(branch: Branch) -> tuple[int, int, float]:
    name = branch.name.lower()
    return (
        0 if name in _MAINLINE else 1,
        0 if "test" in name else 1,
        -commit_timestamp(branch),
    )


def sort_branches(branches: Iterable[Branch]) -> list[Branch]:
    """``master``/``main`` first, then names containing "test", then the rest.

    Within each group the most recently committed branch comes first.
    """
    return sorted(branches, key=_sort_key)
