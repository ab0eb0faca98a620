"""GitLab API client using httpx."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar
from urllib.parse import quote

from pydantic import TypeAdapter, ValidationError

from .config import GitLabConfig
from .exceptions import GitLabApiError, GitLabError
from .git import extract_project_path
from .models.common import ConnectionInfo, Member, User
from .models.merge_requests import CreateMergeRequestRequest, MergeRequest
from .models.projects import Project
from .models.repositories import Branch, Commit
from .result import ApiResult, ErrorKind
from .transport import AuthMethod, HttpJsonTransport, JsonResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_PAGES_PAGE_SIZE = 100
MEMBERS_PAGE_SIZE = 100

_adapters: dict[Any, TypeAdapter] = {}


def _adapter(tp: Any) -> TypeAdapter:
    if tp not in _adapters:
        _adapters[tp] = TypeAdapter(tp)
    return _adapters[tp]


def encode_project_id(project_id: str | int) -> str:
    """Numeric IDs pass through; anything else is a path and is fully percent-encoded.

    The check is purely lexical: only ASCII digits count as numeric.
    """
    if isinstance(project_id, int):
        return str(project_id)
    if project_id and project_id.isascii() and project_id.isdigit():
        return project_id
    return quote(project_id, safe="")


def normalize_scope(scope: str | None) -> str | None:
    """``None``, blank and ``all`` all mean "no scope filter" and are omitted."""
    if scope is None or not scope.strip() or scope.strip().lower() == "all":
        return None
    return scope.strip()


def _mask(token: str) -> str:
    if len(token) > 4:
        return f"{token[:4]}... (length: {len(token)})"
    return "****"


class GitLabClient:
    """Async client for the GitLab REST API v4.

    Every public operation returns an :class:`ApiResult`; no exception escapes.
    """

    def __init__(self, config: GitLabConfig | None = None) -> None:
        self.config = config or GitLabConfig.from_env()
        self.config.validate()
        self.transport = HttpJsonTransport(self.config)
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_server(cls, server: Any, **overrides: Any) -> GitLabClient:
        return cls(GitLabConfig.from_server(server, **overrides))

    async def close(self) -> None:
        """Cancel background work and release pooled connections."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.transport.close()

    async def __aenter__(self) -> GitLabClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Run *coro* in the background; it is cancelled by :meth:`close`."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── HTTP helpers ──────────────────────────────────────────────

    async def _call(
        self,
        method: str,
        path: str,
        parse: Callable[[Any], T],
        *,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        auth: AuthMethod = AuthMethod.QUERY,
    ) -> ApiResult[T]:
        try:
            resp = await self.transport.request(
                method, path, params=params, json_data=json_data, auth=auth
            )
        except GitLabError as e:
            return ApiResult.from_error(e)
        return self._parse(resp, parse)

    @staticmethod
    def _parse(resp: JsonResponse, parse: Callable[[Any], T]) -> ApiResult[T]:
        try:
            return ApiResult.ok(parse(resp.data), resp.status_code)
        except (ValidationError, TypeError, KeyError) as e:
            return ApiResult.fail(f"Invalid JSON: {e}", resp.status_code)

    async def _get_with_auth_fallback(self, path: str) -> tuple[JsonResponse | None, list[GitLabApiError]]:
        """GET *path* with the token as a query parameter, then as a header.

        Returns the first successful response, or ``None`` plus both failures.
        """
        failures: list[GitLabApiError] = []
        for label, auth in (("URL parameter", AuthMethod.QUERY), ("Header", AuthMethod.HEADER)):
            try:
                resp = await self.transport.request("GET", path, auth=auth)
            except GitLabApiError as e:
                if e.status_code < 300:
                    raise
                logger.debug(f"GET {path} with {label} auth: {e.status_code}")
                failures.append(e)
                continue
            logger.debug(f"GET {path} with {label} auth: {resp.status_code}")
            return resp, failures
        return None, failures

    # ── Connection ────────────────────────────────────────────────

    async def test_connection(self) -> ApiResult[ConnectionInfo]:
        logger.debug(f"Testing connection to {self.config.api_url}/user, token {_mask(self.config.token)}")
        try:
            resp, failures = await self._get_with_auth_fallback("/user")
        except GitLabError as e:
            return ApiResult.from_error(e)

        if resp is not None:
            result = self._parse(resp, _adapter(ConnectionInfo).validate_python)
            if result.success:
                logger.info(f"Connected to {self.config.url} as {result.data.username}")
            return result

        first, second = failures
        error = (
            f"HTTP {second.status_code} - Authentication failed\n"
            "\n"
            "Both authentication methods failed:\n"
            f"  Method 1 (URL parameter): {first.status_code}\n"
            f"  Method 2 (Header): {second.status_code}\n"
            "\n"
            f"Response: {second.body[:200] or 'No response body'}"
        )
        return ApiResult.fail(error, second.status_code)

    async def get_current_user(self) -> ApiResult[User]:
        try:
            resp, failures = await self._get_with_auth_fallback("/user")
        except GitLabError as e:
            return ApiResult.from_error(e)

        if resp is not None:
            return self._parse(resp, _adapter(User).validate_python)
        status = failures[-1].status_code
        return ApiResult.fail(f"Authentication failed: HTTP {status}", status)

    # ── Projects ──────────────────────────────────────────────────

    async def get_project(self, project_path: str | int) -> ApiResult[Project]:
        enc = encode_project_id(project_path)
        return await self._call("GET", f"/projects/{enc}", _adapter(Project).validate_python)

    async def match_project_by_url(self, remote_url: str) -> ApiResult[Project]:
        project_path = extract_project_path(remote_url)
        if project_path is None:
            return ApiResult.invalid(f"Cannot derive a project path from URL: {remote_url}")
        return await self.get_project(project_path)

    async def get_user_projects(
        self, page: int = 1, per_page: int | None = None
    ) -> ApiResult[list[Project]]:
        params = {
            "page": page,
            "per_page": per_page or self.config.default_page_size,
            "membership": "true",
            "order_by": "last_activity_at",
            "sort": "desc",
        }
        return await self._call(
            "GET",
            "/projects",
            _adapter(list[Project]).validate_python,
            params=params,
            auth=AuthMethod.HEADER,
        )

    # ── Merge Requests ────────────────────────────────────────────

    async def get_merge_requests(
        self,
        project_id: str | int,
        state: str = "all",
        page: int = 1,
        per_page: int | None = None,
        search: str | None = None,
        scope: str | None = None,
    ) -> ApiResult[list[MergeRequest]]:
        enc = encode_project_id(project_id)
        params: dict[str, Any] = {
            "state": state,
            "page": page,
            "per_page": per_page or self.config.default_page_size,
        }
        if search and search.strip():
            params["search"] = search
        scope = normalize_scope(scope)
        if scope is not None:
            params["scope"] = scope

        result = await self._call(
            "GET",
            f"/projects/{enc}/merge_requests",
            _adapter(list[MergeRequest]).validate_python,
            params=params,
        )
        if result.success:
            logger.debug(f"Got {len(result.data)} MRs for project {project_id} (page {page})")
        return result

    async def get_merge_request(self, project_id: str | int, mr_iid: int) -> ApiResult[MergeRequest]:
        enc = encode_project_id(project_id)
        return await self._call(
            "GET", f"/projects/{enc}/merge_requests/{mr_iid}", MergeRequest.model_validate
        )

    async def get_all_merge_requests(
        self,
        project_id: str | int,
        state: str = "all",
        is_cancelled: Callable[[], bool] | None = None,
    ) -> ApiResult[list[MergeRequest]]:
        """Fetch every page of merge requests.

        Stops at the first short page or the first failed page. *is_cancelled* is
        checked before each page request.
        """
        collected: list[MergeRequest] = []
        page = 1
        while True:
            if is_cancelled is not None and is_cancelled():
                return ApiResult.fail("Cancelled", kind=ErrorKind.CANCELLED)
            result = await self.get_merge_requests(
                project_id, state, page, per_page=ALL_PAGES_PAGE_SIZE
            )
            if not result.success:
                if page == 1:
                    return result
                logger.warning(f"Stopped loading MRs at page {page}: {result.error}")
                break
            collected.extend(result.data)
            if len(result.data) < ALL_PAGES_PAGE_SIZE:
                break
            page += 1
        return ApiResult.ok(collected)

    async def create_merge_request(
        self, project_id: str | int, request: CreateMergeRequestRequest
    ) -> ApiResult[MergeRequest]:
        enc = encode_project_id(project_id)
        return await self._call(
            "POST",
            f"/projects/{enc}/merge_requests",
            MergeRequest.model_validate,
            json_data=request.to_payload(),
        )

    async def close_merge_request(self, project_id: str | int, mr_iid: int) -> ApiResult[MergeRequest]:
        enc = encode_project_id(project_id)
        return await self._call(
            "PUT",
            f"/projects/{enc}/merge_requests/{mr_iid}",
            MergeRequest.model_validate,
            json_data={"state_event": "close"},
        )

    async def merge_merge_request(
        self, project_id: str | int, mr_iid: int, remove_source_branch: bool = False
    ) -> ApiResult[MergeRequest]:
        enc = encode_project_id(project_id)
        body: dict[str, Any] = {}
        if remove_source_branch:
            body["should_remove_source_branch"] = True
        return await self._call(
            "PUT",
            f"/projects/{enc}/merge_requests/{mr_iid}/merge",
            MergeRequest.model_validate,
            json_data=body,
        )

    async def delete_merge_request(self, project_id: str | int, mr_iid: int) -> ApiResult[bool]:
        enc = encode_project_id(project_id)
        return await self._call(
            "DELETE", f"/projects/{enc}/merge_requests/{mr_iid}", lambda _: True
        )

    # ── Branches ──────────────────────────────────────────────────

    async def get_project_branches(
        self, project_id: str | int, search: str | None = None
    ) -> ApiResult[list[Branch]]:
        enc = encode_project_id(project_id)
        params: dict[str, Any] = {"per_page": 100}
        if search:
            params["search"] = search
        return await self._call(
            "GET",
            f"/projects/{enc}/repository/branches",
            _adapter(list[Branch]).validate_python,
            params=params,
        )

    async def get_branch_commit(self, project_id: str | int, branch_name: str) -> ApiResult[Commit]:
        enc = encode_project_id(project_id)
        return await self._call(
            "GET",
            f"/projects/{enc}/repository/branches/{quote(branch_name, safe='')}",
            lambda data: Commit.model_validate(data["commit"]),
        )

    # ── Members ───────────────────────────────────────────────────

    async def get_project_members(self, project_id: str | int) -> ApiResult[list[Member]]:
        """All members, inherited ones included, following ``Link: rel="next"``."""
        enc = encode_project_id(project_id)
        members: list[Member] = []
        page = 1
        while True:
            try:
                resp = await self.transport.request(
                    "GET",
                    f"/projects/{enc}/members/all",
                    params={"page": page, "per_page": MEMBERS_PAGE_SIZE},
                )
            except GitLabError as e:
                return ApiResult.from_error(e)
            parsed = self._parse(resp, _adapter(list[Member]).validate_python)
            if not parsed.success:
                return parsed
            members.extend(parsed.data)
            if not resp.has_next_page():
                return ApiResult.ok(members)
            page += 1
