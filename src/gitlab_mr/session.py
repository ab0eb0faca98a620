"""A browsing session: one server, one project, one merge request list."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .client import GitLabClient
from .controller import MergeRequestListController
from .git import GitMetadataProvider, extract_project_path
from .merge_request_form import CreateMergeRequestForm
from .models.common import ConnectionInfo
from .models.merge_requests import MergeRequest
from .models.projects import Project
from .notifications import LoggingNotificationSink, NotificationKind, NotificationSink
from .result import ApiResult
from .store import ServerConfig, ServerConfigStore, resolve_active_server

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ServerConfig], GitLabClient]

TOKEN_HINT = (
    "\n\nIf the token is valid:\n"
    "1. The token needs the 'api' scope\n"
    "2. The token may have expired, generate a new one\n"
    "3. Check GitLab Settings -> Access Tokens"
)


async def check_server_connection(
    server: ServerConfig,
    notifier: NotificationSink,
    client_factory: ClientFactory = GitLabClient.from_server,
) -> ApiResult[ConnectionInfo]:
    """Run a connection test against *server* and report the outcome."""
    async with client_factory(server) as client:
        result = await client.test_connection()
    if result.success:
        notifier.notify(
            NotificationKind.SUCCESS,
            "Connection successful",
            f"Connected to {server.url} as {result.data.username}",
        )
    else:
        hint = TOKEN_HINT if result.status_code == 401 else ""
        notifier.notify(NotificationKind.ERROR, "Connection failed", f"{result.error}{hint}")
    return result


class MergeRequestSession:
    def __init__(
        self,
        app_store: ServerConfigStore,
        project_store: ServerConfigStore,
        git: GitMetadataProvider,
        notifier: NotificationSink | None = None,
        client_factory: ClientFactory = GitLabClient.from_server,
    ) -> None:
        self.app_store = app_store
        self.project_store = project_store
        self.git = git
        self.notifier = notifier or LoggingNotificationSink()
        self.client_factory = client_factory

        self.server: ServerConfig | None = None
        self.client: GitLabClient | None = None
        self.project: Project | None = None
        self.controller: MergeRequestListController | None = None

    async def start(
        self,
        state: str | None = None,
        scope: str | None = None,
        title_keyword: str | None = None,
    ) -> ApiResult[list[MergeRequest]]:
        """Resolve server and project, then load the first page of merge requests."""
        await self.aclose()

        server = resolve_active_server(self.project_store, self.app_store)
        if server is None:
            return ApiResult.invalid("No GitLab server configured")
        self.server = server
        self.client = self.client_factory(server)

        remote_url = self.git.get_current_remote_url()
        if not remote_url:
            return ApiResult.invalid(
                "The repository has no git remote; configure one to detect the GitLab project"
            )
        project_path = extract_project_path(remote_url)
        if project_path is None:
            return ApiResult.invalid(f"Cannot detect the project path from remote {remote_url}")

        project = await self.client.get_project(project_path)
        if not project.success:
            return ApiResult.fail(project.error, project.status_code, project.error_kind)
        self.project = project.data
        logger.info(f"Browsing {self.project.path_with_namespace} on {server.url}")

        self.controller = MergeRequestListController(self.client, self.project.id)
        result = await self.controller.apply_filter(state, scope, title_keyword)
        return result if result is not None else ApiResult.ok(list(self.controller.items))

    def _require(self) -> tuple[GitLabClient, MergeRequestListController]:
        if self.client is None or self.controller is None:
            msg = "Session not started"
            raise RuntimeError(msg)
        return self.client, self.controller

    def create_form(self) -> CreateMergeRequestForm:
        client, controller = self._require()
        return CreateMergeRequestForm(client, controller.project_id, self.notifier)

    async def close_merge_request(self, mr: MergeRequest) -> ApiResult[MergeRequest]:
        client, controller = self._require()
        result = await client.close_merge_request(controller.project_id, mr.iid)
        if result.success:
            self.notifier.notify(NotificationKind.SUCCESS, "Closed", f"Merge request !{mr.iid} closed")
            await controller.apply_remote_mutation(result.data)
        else:
            self.notifier.notify(NotificationKind.ERROR, "Close failed", result.error)
        return result

    async def merge_merge_request(
        self, mr: MergeRequest, remove_source_branch: bool | None = None
    ) -> ApiResult[MergeRequest]:
        client, controller = self._require()
        remove = mr.force_remove_source_branch if remove_source_branch is None else remove_source_branch
        result = await client.merge_merge_request(controller.project_id, mr.iid, remove)
        if result.success:
            message = f"Merge request !{mr.iid} merged"
            if remove:
                message += ", the source branch will be removed"
            self.notifier.notify(NotificationKind.SUCCESS, "Merged", message)
            await controller.apply_remote_mutation(result.data)
        else:
            self.notifier.notify(NotificationKind.ERROR, "Merge failed", result.error)
        return result

    async def delete_merge_request(self, mr: MergeRequest) -> ApiResult[bool]:
        client, controller = self._require()
        result = await client.delete_merge_request(controller.project_id, mr.iid)
        if result.success:
            self.notifier.notify(NotificationKind.SUCCESS, "Deleted", f"Merge request !{mr.iid} deleted")
            await controller.apply_remote_mutation(mr, deleted=True)
        else:
            self.notifier.notify(NotificationKind.ERROR, "Delete failed", result.error)
        return result

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()
        self.client = None
        self.controller = None
        self.project = None
