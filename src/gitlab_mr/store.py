"""Server configuration bookkeeping for the application and project scopes."""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def normalize_server_url(url: str) -> str:
    """Reduce a user supplied server address to ``scheme://host[:port]``.

    Only http and https with a host are accepted; default ports are dropped.
    """
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        msg = f"Invalid GitLab server URL (expected http:// or https://): {url!r}"
        raise ValueError(msg)
    parsed = urlparse(url)
    if not parsed.hostname:
        msg = f"Invalid GitLab server URL (no host): {url!r}"
        raise ValueError(msg)
    try:
        port = parsed.port
    except ValueError as e:
        msg = f"Invalid GitLab server URL (bad port): {url!r}"
        raise ValueError(msg) from e
    if port is not None and port not in (80, 443):
        return f"{parsed.scheme}://{parsed.hostname}:{port}"
    return f"{parsed.scheme}://{parsed.hostname}"


class ServerConfig(BaseModel):
    """One configured GitLab server. Identity is ``id``."""

    model_config = {"extra": "ignore"}

    id: str
    name: str = ""
    url: str = ""
    token: str = ""
    is_default: bool = False

    @classmethod
    def create(
        cls, url: str, token: str, is_default: bool = False, name: str | None = None
    ) -> ServerConfig:
        normalized = normalize_server_url(url)
        return cls(
            id=f"gitlab_server_{int(time.time() * 1000)}",
            name=name or normalized,
            url=normalized,
            token=token.strip(),
            is_default=is_default,
        )


class ConfigScope(str, Enum):
    APPLICATION = "application"
    PROJECT = "project"


class ServerConfigStore:
    """CRUD over server entries plus one "selected" pointer.

    Application scope only holds application-wide (``is_default``) entries;
    project scope accepts any. No network access, no validation.
    """

    def __init__(self, scope: ConfigScope = ConfigScope.PROJECT) -> None:
        self.scope = scope
        self._servers: list[ServerConfig] = []
        self._selected_id: str | None = None

    def list(self) -> list[ServerConfig]:
        return list(self._servers)

    def add(self, server: ServerConfig) -> bool:
        """Append *server*; returns ``False`` when the scope rejects it."""
        if self.scope is ConfigScope.APPLICATION and not server.is_default:
            logger.debug(f"Application scope ignores project-scoped server {server.id}")
            return False
        self._servers.append(server)
        return True

    def update(self, server: ServerConfig) -> bool:
        for index, existing in enumerate(self._servers):
            if existing.id == server.id:
                self._servers[index] = server
                return True
        return False

    def remove(self, server_id: str) -> None:
        self._servers = [s for s in self._servers if s.id != server_id]
        if self._selected_id == server_id:
            self._selected_id = None

    def get_by_id(self, server_id: str) -> ServerConfig | None:
        return next((s for s in self._servers if s.id == server_id), None)

    def get_selected(self) -> ServerConfig | None:
        if self._selected_id is None:
            return None
        return self.get_by_id(self._selected_id)

    def set_selected(self, server_id: str | None) -> None:
        self._selected_id = server_id

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    def defaults(self) -> list[ServerConfig]:
        return [s for s in self._servers if s.is_default]

    def clear(self) -> None:
        self._servers.clear()
        self._selected_id = None

    def to_state(self) -> dict[str, Any]:
        return {
            "servers": [s.model_dump() for s in self._servers],
            "selected_server_id": self._selected_id,
        }

    @classmethod
    def from_state(
        cls, state: dict[str, Any] | None, scope: ConfigScope = ConfigScope.PROJECT
    ) -> ServerConfigStore:
        store = cls(scope)
        state = state or {}
        store._servers = [ServerConfig.model_validate(s) for s in state.get("servers", [])]
        store._selected_id = state.get("selected_server_id")
        return store


def resolve_active_server(
    project_store: ServerConfigStore, app_store: ServerConfigStore
) -> ServerConfig | None:
    """Pick the server a browsing session should use.

    Project selection wins, then the application selection or first
    application default, then any project server (which becomes selected).
    """
    selected = project_store.get_selected()
    if selected is not None:
        return selected

    app_selected = app_store.get_selected()
    if app_selected is not None:
        return app_selected
    defaults = app_store.defaults()
    if defaults:
        return defaults[0]

    project_servers = project_store.list()
    if project_servers:
        project_store.set_selected(project_servers[0].id)
        return project_servers[0]
    return None


class JsonFileConfigPersistence:
    """Stores both scopes in one JSON file.

    Layout: ``{"application": <state>, "projects": {<project key>: <state>}}``.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)

    def load(self, project_key: str) -> tuple[ServerConfigStore, ServerConfigStore]:
        """Return ``(application_store, project_store)``."""
        raw = self._read()
        app_store = ServerConfigStore.from_state(raw.get("application"), ConfigScope.APPLICATION)
        project_store = ServerConfigStore.from_state(
            raw.get("projects", {}).get(project_key), ConfigScope.PROJECT
        )
        return app_store, project_store

    def save(
        self, project_key: str, app_store: ServerConfigStore, project_store: ServerConfigStore
    ) -> None:
        raw = self._read()
        raw["application"] = app_store.to_state()
        raw.setdefault("projects", {})[project_key] = project_store.to_state()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(raw, indent=2, ensure_ascii=False), encoding="utf-8")
