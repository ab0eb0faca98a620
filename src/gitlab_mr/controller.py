"""Incremental loading, filtering and pagination of a project's merge requests."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .client import GitLabClient, normalize_scope
from .models.merge_requests import MergeRequest, MergeRequestState
from .result import ApiResult

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100


@dataclass(frozen=True)
class MergeRequestFilter:
    state: MergeRequestState | None = None
    scope: str | None = None
    title_keyword: str | None = None

    @classmethod
    def create(
        cls,
        state: MergeRequestState | str | None = None,
        scope: str | None = None,
        title_keyword: str | None = None,
    ) -> MergeRequestFilter:
        if isinstance(state, str):
            state = None if state.lower() == "all" else MergeRequestState.parse(state)
        keyword = title_keyword.strip() if title_keyword else None
        return cls(state=state, scope=normalize_scope(scope), title_keyword=keyword or None)

    @property
    def state_param(self) -> str:
        return self.state.value if self.state else "all"


Listener = Callable[["MergeRequestListController"], None]


class MergeRequestListController:
    """Owns the visible merge request list for one project on one server.

    All state lives on the event loop that calls these coroutines. Requests are
    tagged with the generation they were issued under; a response whose
    generation is no longer current is dropped.
    """

    def __init__(
        self,
        client: GitLabClient,
        project_id: str | int,
        page_size: int = LIST_PAGE_SIZE,
    ) -> None:
        self.client = client
        self.project_id = str(project_id)
        self.page_size = page_size

        self.items: list[MergeRequest] = []
        self.page = 1
        self.has_more = False
        self.is_loading = False
        self.is_loading_more = False
        self.filter = MergeRequestFilter()
        self.last_error: str | None = None

        self._generation = 0
        self._listeners: list[Listener] = []

    # ── observers ─────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def generation(self) -> int:
        return self._generation

    # ── fetching ──────────────────────────────────────────────────

    async def _fetch(self, page: int, flt: MergeRequestFilter) -> ApiResult[list[MergeRequest]]:
        return await self.client.get_merge_requests(
            self.project_id,
            state=flt.state_param,
            page=page,
            per_page=self.page_size,
            search=flt.title_keyword,
            scope=flt.scope,
        )

    async def _reload(self, *, silent: bool) -> ApiResult[list[MergeRequest]] | None:
        self._generation += 1
        generation = self._generation
        flt = self.filter

        self.page = 1
        # An outstanding load-more belongs to the previous generation.
        self.is_loading_more = False
        self.has_more = False
        if not silent:
            self.items = []
            self.is_loading = True
        self._changed()

        result = await self._fetch(1, flt)
        if generation != self._generation:
            logger.debug(f"Dropping stale page 1 (generation {generation})")
            return None

        self.is_loading = False
        if result.success:
            self.items = list(result.data)
            self.page = 1
            self.has_more = len(result.data) >= self.page_size
            self.last_error = None
        else:
            self.last_error = result.error
        self._changed()
        return result

    async def apply_filter(
        self,
        state: MergeRequestState | str | None = None,
        scope: str | None = None,
        title_keyword: str | None = None,
    ) -> ApiResult[list[MergeRequest]] | None:
        """Replace the filter and load page 1 from scratch.

        Returns the page-1 result, or ``None`` if a newer filter or refresh
        superseded this one before it completed.
        """
        self.filter = MergeRequestFilter.create(state, scope, title_keyword)
        logger.debug(f"Applying filter {self.filter}")
        return await self._reload(silent=False)

    async def refresh_silently(self) -> ApiResult[list[MergeRequest]] | None:
        """Reload page 1 with the current filter, keeping the list visible meanwhile."""
        return await self._reload(silent=True)

    async def load_more(self) -> ApiResult[list[MergeRequest]] | None:
        """Append the next page. No-op (returns ``None``) while loading or at the end."""
        if self.is_loading_more or not self.has_more:
            return None

        self.is_loading_more = True
        generation = self._generation
        next_page = self.page + 1
        self._changed()

        result = await self._fetch(next_page, self.filter)
        if generation != self._generation:
            logger.debug(f"Dropping stale page {next_page} (generation {generation})")
            return None

        if result.success:
            self.items.extend(result.data)
            self.page = next_page
            self.has_more = len(result.data) >= self.page_size
            self.last_error = None
        else:
            self.last_error = result.error
        self.is_loading_more = False
        self._changed()
        return result

    # ── mutations ─────────────────────────────────────────────────

    def _index_of(self, iid: int) -> int | None:
        return next((i for i, mr in enumerate(self.items) if mr.iid == iid), None)

    async def apply_remote_mutation(
        self, mr: MergeRequest, *, deleted: bool = False
    ) -> ApiResult[list[MergeRequest]] | None:
        """Reflect a close/merge/delete that already succeeded on the server.

        An updated item still matching the state filter is patched in place.
        Deletions and items that left the state filter trigger a fresh query
        with the current filter instead of local re-filtering.
        """
        index = self._index_of(mr.iid)
        if deleted:
            if index is not None:
                del self.items[index]
            return await self._rerun_filter()

        if index is not None:
            self.items[index] = mr
        if self.filter.state is not None and mr.state != self.filter.state:
            return await self._rerun_filter()
        self._changed()
        return None

    async def _rerun_filter(self) -> ApiResult[list[MergeRequest]] | None:
        flt = self.filter
        return await self.apply_filter(flt.state, flt.scope, flt.title_keyword)

    def find(self, iid: int) -> MergeRequest | None:
        index = self._index_of(iid)
        return None if index is None else self.items[index]
