"""GitLab client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .store import ServerConfig


@dataclass
class GitLabConfig:
    """Connection settings for one GitLab server, passed into the client."""

    url: str = ""
    token: str = ""
    api_version: str = "v4"
    default_page_size: int = 20
    connect_timeout: float = 30.0
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    ssl_verify: bool = True
    max_connections: int = 5

    @classmethod
    def from_env(cls) -> GitLabConfig:
        url = os.getenv("GITLAB_URL", "").rstrip("/")
        token = (
            os.getenv("GITLAB_TOKEN")
            or os.getenv("GITLAB_PAT")
            or os.getenv("GITLAB_PERSONAL_ACCESS_TOKEN")
            or os.getenv("GITLAB_API_TOKEN", "")
        )
        timeout = float(os.getenv("GITLAB_TIMEOUT", "30"))
        ssl_verify = os.getenv("GITLAB_SSL_VERIFY", "true").lower() not in (
            "false",
            "0",
            "no",
        )

        return cls(
            url=url,
            token=token,
            connect_timeout=timeout,
            read_timeout=timeout,
            write_timeout=timeout,
            ssl_verify=ssl_verify,
        )

    @classmethod
    def from_server(cls, server: ServerConfig, **overrides) -> GitLabConfig:
        return cls(url=server.url.rstrip("/"), token=server.token.strip(), **overrides)

    @property
    def api_url(self) -> str:
        return f"{self.url}/api/{self.api_version}"

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.connect_timeout,
        )

    def validate(self) -> None:
        if not self.url:
            msg = "GitLab URL is required. Configure a server or set GITLAB_URL"
            raise ValueError(msg)
        if not self.token:
            msg = (
                "GitLab token is required. Configure a server token or set one of: "
                "GITLAB_TOKEN, GITLAB_PAT, GITLAB_PERSONAL_ACCESS_TOKEN, GITLAB_API_TOKEN"
            )
            raise ValueError(msg)
