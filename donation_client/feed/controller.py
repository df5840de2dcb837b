"""
Paginated Feed Controller

Incremental "load more" over a server-paginated collection.

GUARANTEES:
===========
1. Each id appears once in the feed, at its first-seen position
2. load_next_page() on an exhausted cursor changes nothing
3. Concurrent load_next_page() calls share one request
4. Results of loads started before a load_first_page() are discarded
5. inject() is independent of the cursor and never duplicates an id
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar
import asyncio
import logging

from ..contracts.envelope import Page, PaginationCursor
from ..observability import AuditLog, AuditEventType
from ..store.entity_store import EntityStore


logger = logging.getLogger(__name__)

E = TypeVar('E')

# fetch_page(page, **filters) -> Page
PageFetcher = Callable[..., Awaitable[Page]]


@dataclass
class FeedConfig:
    per_page: int = 10


@dataclass(frozen=True)
class FeedLoadResult:
    """
    Outcome of one feed load.

    `stale` is True when a first-page reload began while this load was
    in flight; such results were not applied.
    """
    added: Tuple[Any, ...] = field(default_factory=tuple)
    exhausted: bool = False
    cursor: Optional[PaginationCursor] = None
    stale: bool = False


class PaginatedFeedController(Generic[E]):
    """Feed over one EntityStore, filled page by page."""

    def __init__(
        self,
        fetch_page: PageFetcher,
        store: Optional[EntityStore[E]] = None,
        config: Optional[FeedConfig] = None,
        audit: Optional[AuditLog] = None,
        name: str = "feed"
    ):
        self._fetch_page = fetch_page
        self._audit = audit or AuditLog()
        self._store = store if store is not None else EntityStore(name, self._audit)
        self._config = config or FeedConfig()
        self._name = name
        self._filters: Dict[str, Any] = {}
        self._cursor: Optional[PaginationCursor] = None
        self._generation = 0
        self._next_load: Optional[asyncio.Task] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def store(self) -> EntityStore[E]:
        return self._store

    @property
    def items(self) -> Tuple[E, ...]:
        return self._store.get_all()

    @property
    def cursor(self) -> Optional[PaginationCursor]:
        return self._cursor

    @property
    def filters(self) -> Dict[str, Any]:
        return dict(self._filters)

    @property
    def is_loading(self) -> bool:
        return self._next_load is not None and not self._next_load.done()

    @property
    def is_exhausted(self) -> bool:
        return self._cursor is not None and self._cursor.is_exhausted

    def set_filters(self, **filters: Any):
        """
        Change the query (search text, type, tags).

        Invalidates in-flight loads and the cursor; the caller must
        load_first_page() next.
        """
        self._filters = {k: v for k, v in filters.items() if v is not None}
        self._invalidate()
        self._cursor = None

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load_first_page(self) -> FeedLoadResult:
        """Reset to page 1 and replace the local list."""
        generation = self._invalidate()
        sequence = self._store.next_sequence()
        page = await self._fetch(1)

        if generation != self._generation:
            return self._stale_result(1)

        self._store.replace_all(page.items, sequence)
        self._cursor = page.cursor
        self._audit.record(
            AuditEventType.FEED, "feed", "load_first_page",
            feed=self._name, count=len(page.items),
            last_page=page.cursor.last_page
        )
        return FeedLoadResult(
            added=self._store.ids(),
            exhausted=page.cursor.is_exhausted,
            cursor=page.cursor
        )

    async def load_next_page(self) -> FeedLoadResult:
        """
        Fetch current_page + 1 and append unseen entities.

        Loads page 1 when nothing was loaded yet.
        """
        if self._cursor is None:
            return await self.load_first_page()
        if self._cursor.is_exhausted:
            self._audit.record(
                AuditEventType.FEED, "feed", "load_next_page",
                outcome="exhausted", feed=self._name
            )
            return FeedLoadResult(exhausted=True, cursor=self._cursor)

        if self._next_load is None or self._next_load.done():
            task = asyncio.ensure_future(
                self._load_page(self._generation, self._cursor.next_page)
            )
            task.add_done_callback(self._clear_next_load)
            self._next_load = task
        else:
            logger.debug("Joining in-flight load for feed %s", self._name)
        return await asyncio.shield(self._next_load)

    async def _load_page(self, generation: int, page_number: int) -> FeedLoadResult:
        sequence = self._store.next_sequence()
        page = await self._fetch(page_number)

        if generation != self._generation:
            return self._stale_result(page_number)

        added = self._store.upsert_many(page.items, sequence)
        self._cursor = page.cursor
        self._audit.record(
            AuditEventType.FEED, "feed", "load_next_page",
            feed=self._name, page=page_number, count=len(page.items),
            added=len(added)
        )
        return FeedLoadResult(
            added=tuple(added),
            exhausted=page.cursor.is_exhausted,
            cursor=page.cursor
        )

    async def _fetch(self, page_number: int) -> Page:
        filters = dict(self._filters)
        filters.setdefault('per_page', self._config.per_page)
        return await self._fetch_page(page_number, **filters)

    # =========================================================================
    # INJECTION
    # =========================================================================

    def inject(self, entity: E) -> bool:
        """
        Insert an externally created entity at the head.

        Returns False when the id is already in the feed.
        """
        inserted = self._store.insert_at_head(entity)
        self._audit.record(
            AuditEventType.FEED, "feed", "inject", getattr(entity, "id"),
            outcome="success" if inserted else "duplicate", feed=self._name
        )
        return inserted

    def remove(self, entity_id: Any) -> bool:
        return self._store.remove(entity_id, self._store.next_sequence())

    def reset(self):
        """Teardown: drop items, cursor and in-flight loads."""
        self._invalidate()
        self._cursor = None
        self._store.clear()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _invalidate(self) -> int:
        self._generation += 1
        self._next_load = None
        return self._generation

    def _clear_next_load(self, task: asyncio.Task):
        if self._next_load is task:
            self._next_load = None
        if not task.cancelled():
            task.exception()

    def _stale_result(self, page_number: int) -> FeedLoadResult:
        self._audit.record(
            AuditEventType.FEED, "feed", "load_page",
            outcome="stale", feed=self._name, page=page_number
        )
        return FeedLoadResult(
            exhausted=self.is_exhausted, cursor=self._cursor, stale=True
        )
