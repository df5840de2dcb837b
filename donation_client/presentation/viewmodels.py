"""
Presentation Contracts

Responsibility:
ViewModels for view components. They carry what to render and
nothing else; every value is derived from store or layer state.

PRINCIPLES:
1. Immutable (Frozen)
2. No I/O
3. "Not found" is a state of its own, distinct from loading and error
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Generic, Optional, Tuple, TypeVar
from enum import Enum

from ..contracts.base import (
    ClientError, ErrorCode, Forbidden, NetworkFailure, NotFound,
    Unauthenticated, ValidationFailed
)
from ..contracts.entities import Comment, DonationEvent
from ..contracts.envelope import FetchOutcome, Lookup
from ..contracts.votes import VoteChoice, VoteState
from ..interaction.vote_machine import VotePhase


T = TypeVar('T')


class ViewState(Enum):
    LOADING = "loading"
    READY = "ready"
    NOT_FOUND = "not_found"
    ERROR = "error"


_DEFAULT_MESSAGES = {
    ErrorCode.NETWORK_FAILURE: "Could not reach the server. Check your connection.",
    ErrorCode.UNAUTHENTICATED: "Please log in to continue.",
    ErrorCode.FORBIDDEN: "You do not have permission to do that.",
    ErrorCode.NOT_FOUND: "The requested item could not be found.",
    ErrorCode.VALIDATION_FAILED: "Please correct the highlighted fields.",
    ErrorCode.SERVER_ERROR: "Something went wrong on the server. Please try again.",
    ErrorCode.MALFORMED_RESPONSE: "The server sent an unexpected response.",
    ErrorCode.VOTE_PENDING: "Your previous vote is still being saved.",
    ErrorCode.VOTE_SUPERSEDED: "Your vote was replaced by a newer one.",
}


def user_message(error: ClientError) -> str:
    """
    Text shown to the user for an error.

    Forbidden keeps the server's reason verbatim, so an unverified
    donor sees exactly why the donation was refused.
    """
    if isinstance(error, Forbidden) and error.message:
        return error.message
    if isinstance(error, ValidationFailed) and error.field_errors:
        first = next(iter(error.field_errors.values()))
        if first:
            return first[0]
    return _DEFAULT_MESSAGES.get(error.code, error.message)


@dataclass(frozen=True)
class ErrorBannerViewModel:
    message: str
    code: str
    requires_login: bool = False
    can_retry: bool = False

    @classmethod
    def from_error(cls, error: ClientError) -> ErrorBannerViewModel:
        return cls(
            message=user_message(error),
            code=error.code.name,
            requires_login=isinstance(error, Unauthenticated),
            can_retry=isinstance(error, NetworkFailure) or error.code == ErrorCode.SERVER_ERROR
        )


# =============================================================================
# DETAIL PAGES
# =============================================================================

@dataclass(frozen=True)
class DetailViewModel(Generic[T]):
    """State of a detail page for one entity."""
    state: ViewState
    entity: Optional[T] = None
    error: Optional[ErrorBannerViewModel] = None

    @classmethod
    def loading(cls) -> DetailViewModel[T]:
        return cls(state=ViewState.LOADING)

    @classmethod
    def from_lookup(cls, lookup: Lookup[T]) -> DetailViewModel[T]:
        if lookup.found:
            return cls(state=ViewState.READY, entity=lookup.entity)
        return cls(state=ViewState.NOT_FOUND)

    @classmethod
    def from_error(cls, error: ClientError) -> DetailViewModel[T]:
        if isinstance(error, NotFound):
            return cls(state=ViewState.NOT_FOUND)
        return cls(state=ViewState.ERROR, error=ErrorBannerViewModel.from_error(error))


# =============================================================================
# COMMUNITY
# =============================================================================

@dataclass(frozen=True)
class VoteButtonsViewModel:
    """Up/down buttons with the score between them."""
    post_id: int
    upvotes: int
    downvotes: int
    score: int
    upvote_active: bool
    downvote_active: bool
    is_pending: bool

    @classmethod
    def build(cls, post_id: int, votes: VoteState, phase: VotePhase) -> VoteButtonsViewModel:
        return cls(
            post_id=post_id,
            upvotes=votes.upvotes,
            downvotes=votes.downvotes,
            score=votes.total,
            upvote_active=votes.user_vote == VoteChoice.UPVOTE,
            downvote_active=votes.user_vote == VoteChoice.DOWNVOTE,
            is_pending=phase == VotePhase.PENDING
        )


@dataclass(frozen=True)
class CommentViewModel:
    comment_id: int
    content: str
    is_pending: bool  # rendered dimmed until the server confirms

    @classmethod
    def from_comment(cls, comment: Comment) -> CommentViewModel:
        return cls(comment_id=comment.id, content=comment.content, is_pending=comment.pending)


@dataclass(frozen=True)
class FeedViewModel(Generic[T]):
    """A list view plus its degraded-data warning, if any."""
    items: Tuple[T, ...]
    is_loading: bool = False
    has_more: bool = False
    is_fallback: bool = False
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_outcome(cls, outcome: FetchOutcome[T]) -> FeedViewModel[T]:
        warnings: Tuple[str, ...] = ()
        if not outcome.is_live:
            reason = user_message(outcome.error) if outcome.error else ""
            warnings = (f"Showing saved data. {reason}".strip(),)
        return cls(
            items=outcome.items,
            has_more=outcome.cursor is not None and not outcome.cursor.is_exhausted,
            is_fallback=not outcome.is_live,
            warnings=warnings
        )


# =============================================================================
# DONATIONS
# =============================================================================

@dataclass(frozen=True)
class DonationProgressViewModel:
    event_id: int
    title: str
    current_amount: float
    goal_amount: float
    percent: int
    is_complete: bool

    @classmethod
    def from_event(cls, event: DonationEvent) -> DonationProgressViewModel:
        return cls(
            event_id=event.id,
            title=event.title,
            current_amount=event.current_amount,
            goal_amount=event.goal_amount,
            percent=int(round(event.progress * 100)),
            is_complete=event.goal_amount > 0 and event.current_amount >= event.goal_amount
        )
