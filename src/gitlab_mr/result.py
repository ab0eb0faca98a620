"""Uniform result envelope returned by every client operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .exceptions import TRANSPORT_STATUS, GitLabApiError, GitLabError

T = TypeVar("T")


class ErrorKind(str, Enum):
    REMOTE = "remote"
    TRANSPORT = "transport"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Either ``data`` (success) or ``error`` (failure), never both.

    ``status_code`` is the HTTP status, or ``-1`` when no response was received
    or the failure was detected locally.
    """

    data: T | None = None
    success: bool = False
    error: str | None = None
    status_code: int = TRANSPORT_STATUS
    error_kind: ErrorKind | None = None

    def __post_init__(self) -> None:
        if self.success != (self.data is not None) or self.success == (self.error is not None):
            msg = "ApiResult requires data on success and an error message on failure"
            raise ValueError(msg)

    @classmethod
    def ok(cls, data: T, status_code: int = 200) -> ApiResult[T]:
        return cls(data=data, success=True, status_code=status_code)

    @classmethod
    def fail(
        cls,
        error: str,
        status_code: int = TRANSPORT_STATUS,
        kind: ErrorKind = ErrorKind.REMOTE,
    ) -> ApiResult[T]:
        return cls(error=error or "Unknown error", status_code=status_code, error_kind=kind)

    @classmethod
    def invalid(cls, error: str) -> ApiResult[T]:
        """Local validation failure: no request was made."""
        return cls.fail(error, TRANSPORT_STATUS, ErrorKind.VALIDATION)

    @classmethod
    def timed_out(cls, error: str) -> ApiResult[T]:
        return cls.fail(error, TRANSPORT_STATUS, ErrorKind.TIMEOUT)

    @classmethod
    def from_error(cls, error: GitLabError) -> ApiResult[T]:
        if isinstance(error, GitLabApiError):
            return cls.fail(error.message, error.status_code, ErrorKind.REMOTE)
        return cls.fail(str(error), TRANSPORT_STATUS, ErrorKind.TRANSPORT)

    @property
    def is_timeout(self) -> bool:
        return self.error_kind is ErrorKind.TIMEOUT
