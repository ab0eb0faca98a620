"""Git repository helpers: remote URL parsing and the metadata provider."""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Protocol
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

# Matches scp-like remotes:  git@host:group/project.git
_SCP_RE = re.compile(r"^(?:[^@/\s]+@)?([^:/\s]+):(.+)$")


def _strip_repo_suffix(path: str) -> str | None:
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path or None


def extract_project_path(remote_url: str) -> str | None:
    """Extract ``group/subgroup/project`` from a git remote URL.

    Supports ``https://host/path(.git)``, ``ssh://git@host[:port]/path(.git)``
    and ``git@host:path(.git)``. Returns ``None`` when no path can be derived.
    """
    url = (remote_url or "").strip()
    if not url:
        return None
    if "://" in url:
        parsed = urlparse(url)
        if not parsed.hostname:
            return None
        return _strip_repo_suffix(unquote(parsed.path))
    m = _SCP_RE.match(url)
    if m:
        return _strip_repo_suffix(m.group(2))
    return None


def detect_server_url(remote_url: str) -> str | None:
    """Best-effort guess of the GitLab server behind a remote URL."""
    url = (remote_url or "").strip()
    if url.startswith(("http://", "https://")):
        parsed = urlparse(url)
        if not parsed.hostname:
            return None
        port = f":{parsed.port}" if parsed.port else ""
        return f"{parsed.scheme}://{parsed.hostname}{port}"
    if "://" in url:
        parsed = urlparse(url)
        return f"https://{parsed.hostname}" if parsed.hostname else None
    m = _SCP_RE.match(url)
    if m:
        return f"https://{m.group(1)}"
    return None


class GitMetadataProvider(Protocol):
    """What the core needs to know about the local checkout."""

    def get_current_remote_url(self) -> str | None: ...

    def get_current_branch_name(self) -> str | None: ...


class SubprocessGitMetadata:
    """Reads remote and branch by shelling out to ``git`` in *cwd*."""

    def __init__(self, cwd: str = ".", remote: str = "origin", timeout: float = 5) -> None:
        self.cwd = cwd
        self.remote = remote
        self.timeout = timeout

    def _git(self, *args: str) -> str | None:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"git {' '.join(args)} timed out in {self.cwd}")
            return None
        except FileNotFoundError:
            logger.error("Git command not found - is git installed?")
            return None
        except OSError as e:
            logger.debug(f"git {' '.join(args)} failed in {self.cwd}: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"git {' '.join(args)} exited {result.returncode}: {result.stderr.strip()}")
            return None
        return result.stdout.strip() or None

    def get_current_remote_url(self) -> str | None:
        return self._git("remote", "get-url", self.remote)

    def get_current_branch_name(self) -> str | None:
        branch = self._git("rev-parse", "--abbrev-ref", "HEAD")
        if branch == "HEAD":
            # detached
            return None
        return branch
