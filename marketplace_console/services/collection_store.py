"""Remote collection store — a paginated, filterable list synced with the server.

Owns the list query, the last good page, and loading/error state.  Reads
never raise past the store: a failed fetch keeps the previous page and
records ``error`` so the view stays usable and can retry.

Every fetch is tagged with a generation number.  Only the response of the
most recently issued fetch is applied; anything older is discarded, so a
slow request for an old filter cannot overwrite a newer result.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any

from marketplace_console.config import settings
from marketplace_console.errors import ConsoleError
from marketplace_console.resources import ResourceSpec, get_resource
from marketplace_console.schemas.common import ListQuery, Page, StatusSummary, parse_items, parse_page
from marketplace_console.schemas.entities import Entity, overlay, parse_entity, status_value
from marketplace_console.services.api import ApiClient

logger = logging.getLogger(__name__)


class RemoteCollectionStore:

    def __init__(
        self,
        api: ApiClient,
        resource: str | ResourceSpec,
        query: ListQuery | None = None,
        *,
        debounce: float | None = None,
    ):
        self.api = api
        self.resource = get_resource(resource)
        self.query = query or ListQuery()
        self.debounce = settings.search_debounce_seconds if debounce is None else debounce

        self.page: Page = Page.empty(self.query.page_size)
        self.summary: dict[str, StatusSummary] = {}
        self.error: ConsoleError | None = None
        self.loading = False
        self.generation = 0

        self._tasks: set[asyncio.Task] = set()
        self._debounce_task: asyncio.Task | None = None

    @classmethod
    def from_query_string(
        cls,
        api: ApiClient,
        resource: str | ResourceSpec,
        query_string: str,
        **kwargs: Any,
    ) -> "RemoteCollectionStore":
        return cls(api, resource, ListQuery.from_query_string(query_string), **kwargs)

    @property
    def query_string(self) -> str:
        """Current query as a shareable URL query string."""
        return self.query.to_query_string()

    @property
    def items(self) -> list[Entity]:
        return self.page.items

    # ── Filters ──────────────────────────────────────────────

    def set_filter(self, **patch: Any) -> None:
        """Apply a filter change and schedule a refetch.

        Text search is debounced; discrete filters (status, sort, page)
        refetch immediately.  Must be called from a running event loop.
        """
        previous = self.query
        self.query = previous.with_filter(**patch)
        search_changed = "search" in patch and self.query.search != previous.search
        self._schedule(self.debounce if search_changed else 0.0)

    def set_page(self, page: int) -> None:
        self.set_filter(page=page)

    def _schedule(self, delay: float) -> None:
        # A fetch still waiting out its debounce window is superseded;
        # one already on the wire is left alone and discarded on arrival.
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

        task = asyncio.get_running_loop().create_task(self._delayed_fetch(delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if delay > 0:
            self._debounce_task = task

    async def _delayed_fetch(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
            if self._debounce_task is asyncio.current_task():
                self._debounce_task = None
        await self.fetch_page()

    async def settle(self) -> Page:
        """Wait until every scheduled fetch has finished."""
        while True:
            pending = {t for t in self._tasks if not t.done()}
            if not pending:
                return self.page
            await asyncio.wait(pending)

    # ── Reads ────────────────────────────────────────────────

    async def fetch_page(self) -> Page:
        """Fetch the page for the current query.

        Returns the page held after the call: the new one on success, the
        previous one on failure (see ``error``).
        """
        self.generation += 1
        generation = self.generation
        query = self.query
        self.loading = True
        try:
            data = await self.api.get(self.resource.path, params=query.to_params())
            page, summary = parse_page(
                data,
                model=self.resource.model,
                items_key=self.resource.items_key,
                query=query,
            )
        except ConsoleError as exc:
            if generation != self.generation:
                logger.debug(
                    "Dropping stale %s failure (generation %d < %d)",
                    self.resource.name, generation, self.generation,
                )
                return self.page
            logger.warning("Failed to fetch %s: %s", self.resource.name, exc)
            self.error = exc
            return self.page
        finally:
            if generation == self.generation:
                self.loading = False

        if generation != self.generation:
            logger.debug(
                "Dropping stale %s response (generation %d < %d)",
                self.resource.name, generation, self.generation,
            )
            return self.page

        self.page = page
        self.summary = summary
        self.error = None

        if self.query == query:
            if page.total_pages and query.page > page.total_pages:
                logger.debug(
                    "Page %d beyond last page %d of %s; clamping",
                    query.page, page.total_pages, self.resource.name,
                )
                self.query = query.model_copy(update={"page": page.total_pages})
                return await self.fetch_page()
            if page.total_pages == 0 and query.page != 1:
                self.query = query.model_copy(update={"page": 1})
                self.page = Page.empty(query.page_size)
        return self.page

    async def fetch_all(self) -> list[Entity]:
        """Fetch every item matching the current filters (``all=true``).

        Used for exports; unlike ``fetch_page`` this raises on failure.
        """
        params = {**self.query.to_params(), "all": "true"}
        params.pop("page", None)
        data = await self.api.get(self.resource.path, params=params)
        return parse_items(data, model=self.resource.model, items_key=self.resource.items_key)

    async def fetch_one(self, entity_id: str) -> Entity:
        """Fetch one entity; refreshes the held copy when it is on the page.

        Raises:
            ConsoleError: the read failed.
        """
        data = await self.api.get(self.resource.item_path(entity_id))
        entity = parse_entity(self.resource.model, self.resource.unwrap_entity(data))
        self.replace(entity)
        return entity

    def reset(self) -> None:
        """Drop every in-flight or scheduled fetch (view torn down)."""
        self.generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._debounce_task = None
        self.loading = False

    # ── Local cache ──────────────────────────────────────────

    def _index(self, entity_id: str) -> int | None:
        for i, item in enumerate(self.page.items):
            if item.id == entity_id:
                return i
        return None

    def get(self, entity_id: str) -> Entity | None:
        idx = self._index(entity_id)
        return None if idx is None else self.page.items[idx]

    def replace(self, entity: Entity) -> bool:
        """Swap in ``entity`` for the held item with the same id."""
        idx = self._index(entity.id)
        if idx is None:
            return False
        items = list(self.page.items)
        items[idx] = entity
        self.page = self.page.model_copy(update={"items": items})
        return True

    def merge(self, entity_id: str, fields: dict[str, Any]) -> Entity | None:
        """Overlay server ``fields`` on the held item and re-validate it."""
        current = self.get(entity_id)
        if current is None:
            return None
        updated = overlay(current, fields)
        self.replace(updated)
        return updated

    def remove(self, entity_id: str) -> bool:
        idx = self._index(entity_id)
        if idx is None:
            return False
        items = list(self.page.items)
        del items[idx]
        self.page = self.page.model_copy(
            update={"items": items, "total_items": max(self.page.total_items - 1, 0)}
        )
        return True

    def status_counts(self) -> dict[str, int]:
        """Items per status on the held page."""
        return dict(Counter(status_value(getattr(item, "status", None)) for item in self.page.items))
