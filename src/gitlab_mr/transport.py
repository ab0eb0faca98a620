"""Authenticated JSON transport over httpx."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .config import GitLabConfig
from .exceptions import GitLabApiError, GitLabTransportError

logger = logging.getLogger(__name__)


class AuthMethod(str, Enum):
    QUERY = "query"  # ?private_token=...
    HEADER = "header"  # PRIVATE-TOKEN: ...


@dataclass
class JsonResponse:
    status_code: int
    data: Any
    headers: httpx.Headers

    def has_next_page(self) -> bool:
        """True when the ``Link`` header advertises a ``rel="next"`` relation."""
        link = self.headers.get("link")
        return bool(link) and 'rel="next"' in link


class HttpJsonTransport:
    """Owns the connection pool for one client and speaks JSON to ``/api/v4``."""

    def __init__(self, config: GitLabConfig) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_url,
            headers={"Accept": "application/json"},
            timeout=config.timeout,
            verify=config.ssl_verify,
            limits=httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=config.max_connections,
            ),
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def close(self) -> None:
        await self._client.aclose()

    def _authenticate(
        self, auth: AuthMethod, params: dict[str, Any] | None
    ) -> tuple[dict[str, Any], dict[str, str]]:
        query = dict(params or {})
        headers: dict[str, str] = {}
        if auth is AuthMethod.QUERY:
            query["private_token"] = self.config.token
        else:
            headers["PRIVATE-TOKEN"] = self.config.token.strip()
        return query, headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        auth: AuthMethod = AuthMethod.QUERY,
    ) -> JsonResponse:
        """Send one request and return the decoded body.

        Raises :class:`GitLabApiError` for non-2xx responses and for 2xx bodies
        that are not valid JSON, and :class:`GitLabTransportError` when no
        response arrives at all.
        """
        query, headers = self._authenticate(auth, params)
        kwargs: dict[str, Any] = {"params": query, "headers": headers}
        if json_data is not None:
            kwargs["json"] = json_data

        logger.debug(f"{method} {path} params={params} auth={auth.value}")
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"Transport failure for {method} {path}: {e!r}")
            raise GitLabTransportError(str(e) or e.__class__.__name__) from e

        if not resp.is_success:
            logger.debug(f"{method} {path} -> {resp.status_code}: {resp.text[:200]}")
            raise GitLabApiError(resp.status_code, resp.text)

        if resp.status_code == 204 or not resp.content:
            return JsonResponse(resp.status_code, None, resp.headers)

        try:
            data = resp.json()
        except ValueError as e:
            raise GitLabApiError(
                resp.status_code, resp.text[:500], message=f"Invalid JSON: {e}"
            ) from e
        return JsonResponse(resp.status_code, data, resp.headers)
