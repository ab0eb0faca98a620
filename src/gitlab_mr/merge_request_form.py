"""State behind the "create merge request" flow."""

from __future__ import annotations

import asyncio
import logging

from .branches import sort_branches
from .client import GitLabClient
from .git import GitMetadataProvider
from .models.common import Member
from .models.merge_requests import CreateMergeRequestRequest, MergeRequest
from .models.repositories import Branch, Commit
from .notifications import NotificationKind, NotificationSink
from .result import ApiResult

logger = logging.getLogger(__name__)

PRELOAD_TIMEOUT = 5.0


async def preload_branches_and_members(
    client: GitLabClient, project_id: str | int, timeout: float = PRELOAD_TIMEOUT
) -> tuple[ApiResult[list[Branch]], ApiResult[list[Member]]]:
    """Fetch branches and members concurrently under one shared deadline.

    When the deadline passes both results are TIMEOUT failures, which callers
    can tell apart from a server rejection.
    """
    try:
        branches, members = await asyncio.wait_for(
            asyncio.gather(
                client.get_project_branches(project_id),
                client.get_project_members(project_id),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Loading branches and members for {project_id} timed out after {timeout}s")
        msg = f"Timed out after {timeout:g}s loading branches and members; the network may be slow, retry"
        return ApiResult.timed_out(msg), ApiResult.timed_out(msg)
    return branches, members


class CreateMergeRequestForm:
    """Field values plus the network-backed helpers that fill them."""

    def __init__(
        self,
        client: GitLabClient,
        project_id: str | int,
        notifier: NotificationSink,
        preload_timeout: float = PRELOAD_TIMEOUT,
    ) -> None:
        self.client = client
        self.project_id = str(project_id)
        self.notifier = notifier
        self.preload_timeout = preload_timeout

        self.branches: list[Branch] = []
        self.members: list[Member] = []
        self.source_branch = ""
        self.target_branch = ""
        self.title = ""
        self.description = ""
        self.assignee_id: int | None = None
        self.remove_source_branch = False

        self.title_edited = False
        self.description_edited = False
        self._last_autofilled_branch: str | None = None
        self._commit_cache: dict[str, Commit] = {}

    @property
    def branch_names(self) -> list[str]:
        return [b.name for b in self.branches]

    async def load(self) -> ApiResult[list[Branch]]:
        branches, members = await preload_branches_and_members(
            self.client, self.project_id, self.preload_timeout
        )
        if branches.success:
            self.branches = sort_branches(branches.data)
        else:
            self.branches = []
            title = "Loading timed out" if branches.is_timeout else "Loading failed"
            self.notifier.notify(
                NotificationKind.ERROR, title, f"Cannot load branches: {branches.error}"
            )
        # The assignee list is optional.
        self.members = list(members.data) if members.success else []
        return branches

    # ── user edits ────────────────────────────────────────────────

    def edit_title(self, text: str) -> None:
        self.title = text
        self.title_edited = True

    def edit_description(self, text: str) -> None:
        self.description = text
        self.description_edited = True

    def _fill_from_commit(self, commit: Commit, branch: str) -> None:
        if not self.title_edited:
            self.title = commit.title
        if not self.description_edited:
            self.description = commit.message
        self._last_autofilled_branch = branch

    async def _autofill(self, branch: str) -> None:
        if branch in self._commit_cache:
            self._fill_from_commit(self._commit_cache[branch], branch)
            return
        result = await self.client.get_branch_commit(self.project_id, branch)
        if result.success:
            self._commit_cache[branch] = result.data
            if self.source_branch == branch:
                self._fill_from_commit(result.data, branch)
        else:
            logger.debug(f"Auto-fill from {branch} skipped: {result.error}")

    async def select_source_branch(self, name: str) -> None:
        """Set the source branch and auto-fill title/description from its tip commit."""
        name = name.strip()
        self.source_branch = name
        if not name:
            return
        if self._last_autofilled_branch is not None and self._last_autofilled_branch != name:
            # Switching branches re-enables auto-fill.
            self.title_edited = False
            self.description_edited = False
        await self._autofill(name)

    def prefetch_branch_commit(self, name: str) -> asyncio.Task[None] | None:
        """Speculatively warm the commit cache for a branch being typed."""
        name = name.strip()
        if not name or name in self._commit_cache or name not in self.branch_names:
            return None

        async def _prefetch() -> None:
            result = await self.client.get_branch_commit(self.project_id, name)
            if result.success:
                self._commit_cache[name] = result.data

        return self.client.spawn(_prefetch())

    async def use_current_branch(self, git: GitMetadataProvider) -> ApiResult[str]:
        """Select the checked-out branch as source and assign the current user."""
        branch = git.get_current_branch_name()
        if not branch:
            result = ApiResult.invalid("Cannot determine the current branch of the repository")
            self.notifier.notify(NotificationKind.ERROR, "No current branch", result.error)
            return result
        if branch not in self.branch_names:
            result = ApiResult.invalid(
                f'Branch "{branch}" does not exist on the remote. Push it with git push first.'
            )
            self.notifier.notify(NotificationKind.ERROR, "Remote branch missing", result.error)
            return result

        await self.select_source_branch(branch)

        user = await self.client.get_current_user()
        if user.success and any(m.id == user.data.id for m in self.members):
            self.assignee_id = user.data.id
        return ApiResult.ok(branch)

    # ── submit ────────────────────────────────────────────────────

    def validate(self) -> ApiResult[CreateMergeRequestRequest]:
        source = self.source_branch.strip()
        target = self.target_branch.strip()
        title = self.title.strip()
        if not source:
            return ApiResult.invalid("Select a source branch")
        if not target:
            return ApiResult.invalid("Select a target branch")
        if source == target:
            return ApiResult.invalid("Source and target branch must differ")
        if not title:
            return ApiResult.invalid("Enter a merge request title")
        return ApiResult.ok(
            CreateMergeRequestRequest(
                source_branch=source,
                target_branch=target,
                title=title,
                description=self.description.strip() or None,
                assignee_id=self.assignee_id,
                remove_source_branch=self.remove_source_branch,
            )
        )

    async def submit(self) -> ApiResult[MergeRequest]:
        validated = self.validate()
        if not validated.success:
            self.notifier.notify(NotificationKind.ERROR, "Validation failed", validated.error)
            return ApiResult.invalid(validated.error)
        request = validated.data

        for role, branch in (("Source", request.source_branch), ("Target", request.target_branch)):
            check = await self.client.get_branch_commit(self.project_id, branch)
            if not check.success:
                msg = f"{role} branch '{branch}' does not exist in the remote repository"
                self.notifier.notify(NotificationKind.ERROR, "Validation failed", msg)
                return ApiResult.fail(msg, check.status_code, check.error_kind)

        result = await self.client.create_merge_request(self.project_id, request)
        if result.success:
            mr = result.data
            self.notifier.notify(
                NotificationKind.SUCCESS,
                "Merge request created",
                f'Merge request !{mr.iid} "{mr.title}" created\n{mr.web_url}',
            )
        else:
            self.notifier.notify(NotificationKind.ERROR, "Create failed", result.error)
        return result
