"""Command-line host for browsing and acting on merge requests."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click
from dotenv import load_dotenv

from .config import GitLabConfig
from .git import SubprocessGitMetadata
from .models.merge_requests import MergeRequest, MergeRequestState
from .notifications import NotificationKind
from .session import MergeRequestSession, check_server_connection
from .store import (
    JsonFileConfigPersistence,
    ServerConfig,
    ServerConfigStore,
    resolve_active_server,
)

T = TypeVar("T")

DEFAULT_CONFIG_PATH = "~/.config/gitlab-mr/servers.json"
ENV_SERVER_ID = "env"

_COLORS = {
    NotificationKind.INFO: None,
    NotificationKind.SUCCESS: "green",
    NotificationKind.WARNING: "yellow",
    NotificationKind.ERROR: "red",
}


class ClickNotificationSink:
    def notify(self, kind: NotificationKind, title: str, body: str) -> None:
        click.secho(f"{title}: {body}", fg=_COLORS[kind], err=kind is NotificationKind.ERROR)


@dataclass
class CliState:
    repo: Path
    persistence: JsonFileConfigPersistence

    @property
    def project_key(self) -> str:
        return str(self.repo.resolve())

    def load_stores(self) -> tuple[ServerConfigStore, ServerConfigStore]:
        try:
            return self.persistence.load(self.project_key)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Cannot read server config {self.persistence.path}: {e}") from e

    def save_stores(self, app_store: ServerConfigStore, project_store: ServerConfigStore) -> None:
        self.persistence.save(self.project_key, app_store, project_store)

    def session(self) -> MergeRequestSession:
        app_store, project_store = self.load_stores()
        if not app_store.list() and not project_store.list():
            env = GitLabConfig.from_env()
            if env.url and env.token:
                app_store.add(
                    ServerConfig(
                        id=ENV_SERVER_ID,
                        name=env.url,
                        url=env.url,
                        token=env.token,
                        is_default=True,
                    )
                )
        return MergeRequestSession(
            app_store,
            project_store,
            SubprocessGitMetadata(str(self.repo)),
            ClickNotificationSink(),
        )


def _run(coro: Awaitable[T]) -> T:
    return asyncio.run(coro)


async def _in_session(
    state: CliState,
    action: Callable[[MergeRequestSession], Awaitable[T]],
    /,
    **filters: Any,
) -> T:
    session = state.session()
    try:
        started = await session.start(**filters)
        if not started.success:
            raise click.ClickException(started.error)
        return await action(session)
    finally:
        await session.aclose()


async def _fetch_mr(session: MergeRequestSession, iid: int) -> MergeRequest:
    result = await session.client.get_merge_request(session.controller.project_id, iid)
    if not result.success:
        raise click.ClickException(result.error)
    return result.data


def _format_row(mr: MergeRequest) -> str:
    flags = " [draft]" if mr.draft else ""
    if mr.has_conflicts:
        flags += " [conflicts]"
    return (
        f"!{mr.iid:<5} {mr.state.value:<7} {mr.source_branch} -> {mr.target_branch}  "
        f"{mr.title}{flags}  (@{mr.author.username})"
    )


@click.group()
@click.option(
    "--repo",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Git checkout to work in",
)
@click.option(
    "--config",
    "config_path",
    envvar="GITLAB_MR_CONFIG",
    default=DEFAULT_CONFIG_PATH,
    help="Server config file",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, repo: Path, config_path: str, verbose: bool) -> None:
    """Browse and act on GitLab merge requests for the current repository."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CliState(repo=repo, persistence=JsonFileConfigPersistence(config_path))


# ── servers ───────────────────────────────────────────────────────


@main.group()
def servers() -> None:
    """Manage configured GitLab servers."""


@servers.command("add")
@click.argument("url")
@click.option("--token", prompt=True, hide_input=True, help="Personal access token with api scope")
@click.option("--name", default=None)
@click.option("--default", "is_default", is_flag=True, help="Make available to every project")
@click.pass_obj
def servers_add(state: CliState, url: str, token: str, name: str | None, is_default: bool) -> None:
    if not token.strip():
        raise click.BadParameter("token must not be empty", param_hint="--token")
    try:
        server = ServerConfig.create(url, token, is_default=is_default, name=name)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="URL") from e

    app_store, project_store = state.load_stores()
    store = app_store if is_default else project_store
    store.add(server)
    if store.selected_id is None:
        store.set_selected(server.id)
    state.save_stores(app_store, project_store)
    click.echo(f"Added {server.id} ({server.url})")


@servers.command("list")
@click.pass_obj
def servers_list(state: CliState) -> None:
    app_store, project_store = state.load_stores()
    rows = [("application", app_store, s) for s in app_store.list()]
    rows += [("project", project_store, s) for s in project_store.list()]
    if not rows:
        click.echo("No servers configured")
        return
    for scope, store, server in rows:
        marker = "*" if store.selected_id == server.id else " "
        click.echo(f"{marker} {server.id}  {server.name}  {server.url}  [{scope}]")


@servers.command("remove")
@click.argument("server_id")
@click.pass_obj
def servers_remove(state: CliState, server_id: str) -> None:
    app_store, project_store = state.load_stores()
    if app_store.get_by_id(server_id) is None and project_store.get_by_id(server_id) is None:
        raise click.ClickException(f"Unknown server: {server_id}")
    app_store.remove(server_id)
    project_store.remove(server_id)
    state.save_stores(app_store, project_store)
    click.echo(f"Removed {server_id}")


@servers.command("select")
@click.argument("server_id")
@click.pass_obj
def servers_select(state: CliState, server_id: str) -> None:
    app_store, project_store = state.load_stores()
    if project_store.get_by_id(server_id) is not None:
        project_store.set_selected(server_id)
    elif app_store.get_by_id(server_id) is not None:
        app_store.set_selected(server_id)
    else:
        raise click.ClickException(f"Unknown server: {server_id}")
    state.save_stores(app_store, project_store)
    click.echo(f"Selected {server_id}")


@main.command("test-connection")
@click.argument("server_id", required=False)
@click.pass_obj
def test_connection(state: CliState, server_id: str | None) -> None:
    """Check URL and token of a configured server."""
    session = state.session()
    if server_id:
        server = session.project_store.get_by_id(server_id) or session.app_store.get_by_id(server_id)
    else:
        server = resolve_active_server(session.project_store, session.app_store)
    if server is None:
        raise click.ClickException("No GitLab server configured")
    result = _run(check_server_connection(server, session.notifier, session.client_factory))
    if not result.success:
        raise SystemExit(1)


# ── merge requests ────────────────────────────────────────────────


@main.command("list")
@click.option(
    "--state",
    "mr_state",
    type=click.Choice(["all"] + [s.value for s in MergeRequestState]),
    default="all",
)
@click.option(
    "--scope",
    type=click.Choice(["all", "created_by_me", "assigned_to_me"]),
    default="all",
)
@click.option("--search", default=None, help="Match title and description")
@click.option("--pages", default=1, show_default=True, help="Pages of 100 to load")
@click.pass_obj
def list_merge_requests(
    state: CliState, mr_state: str, scope: str, search: str | None, pages: int
) -> None:
    """List merge requests of the repository's GitLab project."""

    async def action(session: MergeRequestSession) -> list[MergeRequest]:
        controller = session.controller
        while controller.has_more and controller.page < pages:
            result = await controller.load_more()
            if result is not None and not result.success:
                raise click.ClickException(result.error)
        return list(controller.items)

    items = _run(
        _in_session(state, action, state=mr_state, scope=scope, title_keyword=search)
    )
    if not items:
        click.echo("No merge requests")
    for mr in items:
        click.echo(_format_row(mr))


@main.command("show")
@click.argument("iid", type=int)
@click.pass_obj
def show(state: CliState, iid: int) -> None:
    mr = _run(_in_session(state, lambda session: _fetch_mr(session, iid)))
    click.echo(_format_row(mr))
    click.echo(f"URL:       {mr.web_url}")
    click.echo(f"Assignees: {', '.join('@' + u.username for u in mr.assignees) or '-'}")
    click.echo(f"Reviewers: {', '.join('@' + u.username for u in mr.reviewers) or '-'}")
    click.echo(f"Labels:    {', '.join(mr.labels) or '-'}")
    click.echo(f"Votes:     +{mr.upvotes} -{mr.downvotes}  Notes: {mr.user_notes_count}")
    if mr.description:
        click.echo("")
        click.echo(mr.description)


def _act(state: CliState, iid: int, verb: str, **kwargs: Any) -> None:
    async def action(session: MergeRequestSession) -> bool:
        mr = await _fetch_mr(session, iid)
        method = getattr(session, f"{verb}_merge_request")
        result = await method(mr, **kwargs)
        return result.success

    if not _run(_in_session(state, action)):
        raise SystemExit(1)


@main.command("close")
@click.argument("iid", type=int)
@click.pass_obj
def close(state: CliState, iid: int) -> None:
    _act(state, iid, "close")


@main.command("merge")
@click.argument("iid", type=int)
@click.option("--remove-source-branch/--keep-source-branch", default=None)
@click.pass_obj
def merge(state: CliState, iid: int, remove_source_branch: bool | None) -> None:
    _act(state, iid, "merge", remove_source_branch=remove_source_branch)


@main.command("delete")
@click.argument("iid", type=int)
@click.confirmation_option(prompt="Delete this merge request?")
@click.pass_obj
def delete(state: CliState, iid: int) -> None:
    _act(state, iid, "delete")


@main.command("create")
@click.option("--source", default=None, help="Source branch")
@click.option("--target", default=None, help="Target branch")
@click.option("--current-branch", is_flag=True, help="Use the checked-out branch as source")
@click.option("--title", default=None)
@click.option("--description", default=None)
@click.option("--assignee", default=None, help="Assignee username")
@click.option("--remove-source-branch", is_flag=True)
@click.pass_obj
def create(
    state: CliState,
    source: str | None,
    target: str | None,
    current_branch: bool,
    title: str | None,
    description: str | None,
    assignee: str | None,
    remove_source_branch: bool,
) -> None:
    """Create a merge request; title and description default to the source tip commit."""

    async def action(session: MergeRequestSession) -> bool:
        form = session.create_form()
        loaded = await form.load()
        if not loaded.success:
            return False
        if current_branch:
            picked = await form.use_current_branch(session.git)
            if not picked.success:
                return False
        elif source:
            await form.select_source_branch(source)
        form.target_branch = target or (session.project.default_branch or "")
        if title:
            form.edit_title(title)
        if description:
            form.edit_description(description)
        if assignee:
            member = next((m for m in form.members if m.username == assignee), None)
            if member is None:
                raise click.BadParameter(f"not a project member: {assignee}", param_hint="--assignee")
            form.assignee_id = member.id
        form.remove_source_branch = remove_source_branch
        result = await form.submit()
        return result.success

    if not _run(_in_session(state, action)):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
