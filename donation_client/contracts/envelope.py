"""
Response Envelopes

Wrappers for what the remote client and repositories hand back.

ENVELOPE CONTRACT:
==================
- Pagination is server-controlled; the client only reads it
- "Not found" is an explicit outcome, never None and never an exception
- Live and fallback results are distinguishable by their source
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Optional, Tuple, TypeVar
from enum import Enum

from .base import ClientError, MalformedResponse


T = TypeVar('T')


# =============================================================================
# PAGINATION
# =============================================================================

@dataclass(frozen=True)
class PaginationCursor:
    """
    Position in a paginated collection.

    INVARIANT: 1 <= current_page <= last_page
    """
    current_page: int = 1
    last_page: int = 1
    per_page: int = 10
    total: int = 0

    def __post_init__(self):
        if self.current_page < 1:
            raise ValueError("current_page must be >= 1")
        if self.last_page < self.current_page:
            raise ValueError("current_page must not exceed last_page")
        if self.per_page <= 0:
            raise ValueError("per_page must be > 0")

    @property
    def is_exhausted(self) -> bool:
        return self.current_page >= self.last_page

    @property
    def next_page(self) -> int:
        return self.current_page + 1

    @classmethod
    def from_meta(cls, meta: Optional[Mapping], requested_page: int,
                  item_count: int, default_per_page: int) -> PaginationCursor:
        """
        Build a cursor from Laravel-style meta.

        Missing meta means a single, complete page. last_page is clamped
        up to current_page (empty collections report last_page=1).
        """
        if not meta:
            return cls(
                current_page=requested_page,
                last_page=requested_page,
                per_page=default_per_page,
                total=item_count
            )
        try:
            current = int(meta.get("current_page") or requested_page)
            last = int(meta.get("last_page") or current)
            per_page = int(meta.get("per_page") or default_per_page)
            total = int(meta.get("total") or 0)
        except (TypeError, ValueError):
            raise MalformedResponse("Pagination meta is not numeric")
        current = max(1, current)
        return cls(
            current_page=current,
            last_page=max(current, last),
            per_page=max(1, per_page),
            total=max(0, total)
        )


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of entities plus the cursor the server reported."""
    items: Tuple[T, ...]
    cursor: PaginationCursor

    @classmethod
    def parse(
        cls,
        body: Any,
        parser: Callable[[Any], T],
        requested_page: int,
        default_per_page: int
    ) -> Page[T]:
        """
        Parse `{data: [...], meta: {...}}` or a bare list.

        Any malformed item fails the WHOLE page.
        """
        if isinstance(body, list):
            raw_items, meta = body, None
        elif isinstance(body, Mapping) and isinstance(body.get("data"), list):
            raw_items, meta = body["data"], body.get("meta")
        else:
            raise MalformedResponse("List response has no data array")
        items = tuple(parser(raw) for raw in raw_items)
        cursor = PaginationCursor.from_meta(
            meta, requested_page, len(items), default_per_page
        )
        return cls(items=items, cursor=cursor)


# =============================================================================
# LOOKUP (explicit absence)
# =============================================================================

class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Result of fetching one entity by id."""
    status: LookupStatus
    entity_id: Any
    entity: Optional[T] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

    @classmethod
    def of(cls, entity_id: Any, entity: T) -> Lookup[T]:
        return cls(status=LookupStatus.FOUND, entity_id=entity_id, entity=entity)

    @classmethod
    def not_found(cls, entity_id: Any) -> Lookup[T]:
        return cls(status=LookupStatus.NOT_FOUND, entity_id=entity_id)


# =============================================================================
# FETCH OUTCOME (live vs fallback)
# =============================================================================

class DataSource(Enum):
    LIVE = "live"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """
    Result of a repository refresh.

    FALLBACK results carry the error that caused the degradation.
    """
    source: DataSource
    items: Tuple[T, ...]
    cursor: Optional[PaginationCursor] = None
    error: Optional[ClientError] = field(default=None, compare=False)

    @property
    def is_live(self) -> bool:
        return self.source == DataSource.LIVE
