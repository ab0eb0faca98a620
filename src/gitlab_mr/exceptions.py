"""GitLab API exceptions.

These never cross the public client boundary: :class:`~gitlab_mr.client.GitLabClient`
folds them into an :class:`~gitlab_mr.result.ApiResult`.
"""

from __future__ import annotations

import json

TRANSPORT_STATUS = -1

CONNECTION_GUIDANCE = (
    "Please check:\n"
    "1. Server URL is correct\n"
    "2. Access Token is valid and has 'api' scope\n"
    "3. Network connection is working\n"
    "4. SSL certificate is trusted (for self-hosted GitLab)"
)


def extract_error_message(body: str | None) -> str:
    """Pull a human readable message out of a GitLab error body.

    Looks at ``message``, then ``error``, then ``error_description``. Falls back
    to the first 200 characters of the raw body when none is present or the
    body is not JSON.
    """
    if not body:
        return "Unknown error"
    try:
        payload = json.loads(body)
    except ValueError:
        return body[:200]
    if isinstance(payload, dict):
        for key in ("message", "error", "error_description"):
            value = payload.get(key)
            if value is None:
                continue
            if isinstance(value, str):
                return value
            return json.dumps(value, ensure_ascii=False)
    return body[:200]


class GitLabError(Exception):
    """Base exception for GitLab operations."""

    status_code: int = TRANSPORT_STATUS


class GitLabApiError(GitLabError):
    """Raised when the GitLab API returns a non-success response."""

    def __init__(self, status_code: int, body: str = "", message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.message = message or extract_error_message(body)
        super().__init__(self.message)


class GitLabTransportError(GitLabError):
    """Raised when no HTTP response was received (DNS, TLS, timeout, refused)."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Connection failed: {detail}\n{CONNECTION_GUIDANCE}")
