"""
Integration Test Fixtures

Explicit entities, pages and scripted remotes for deterministic tests.
No random generation; timing is controlled by the test through
futures the scripted remotes hand out.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
import asyncio

import httpx

from donation_client.contracts import (
    Comment, CommunityPost, DonationEvent, Page, PaginationCursor,
    UserProfile, VoteChoice, VoteCounts, VoteState,
)
from donation_client.remote import ApiTransport, TransportConfig
from donation_client.session import MemoryCredentialStore, SessionState


BASE_URL = "http://testserver/api"
TOKEN = "test-token"

VERIFIED_USER = UserProfile(id=1, username="alice", email="alice@example.com", verified=True)
UNVERIFIED_USER = UserProfile(id=2, username="bob", email="bob@example.com", verified=False)


# =============================================================================
# ENTITIES
# =============================================================================

def make_post(
    post_id: int,
    upvotes: int = 0,
    downvotes: int = 0,
    user_vote: VoteChoice = VoteChoice.NONE,
    comments_count: int = 0
) -> CommunityPost:
    return CommunityPost(
        id=post_id,
        content=f"post {post_id}",
        votes=VoteState(upvotes=upvotes, downvotes=downvotes, user_vote=user_vote),
        comments_count=comments_count,
    )


def make_event(event_id: int, current: float = 100.0, goal: float = 500.0,
               type: str = "request") -> DonationEvent:
    return DonationEvent(
        id=event_id, title=f"event {event_id}", type=type, status="active",
        goal_amount=goal, current_amount=current,
    )


def event_json(event_id: int, current: float = 100.0, goal: float = 500.0,
               type: str = "request") -> dict:
    return {
        "id": event_id, "title": f"event {event_id}", "type": type,
        "status": "active", "goal_amount": goal, "current_amount": current,
    }


def post_json(post_id: int, upvotes: int = 0, downvotes: int = 0,
              user_vote: Optional[str] = None) -> dict:
    return {
        "id": post_id,
        "content": f"post {post_id}",
        "votes": {"upvotes": upvotes, "downvotes": downvotes, "user_vote": user_vote},
        "comments_count": 0,
    }


def make_page(ids: Sequence[int], current_page: int, last_page: int,
              per_page: int = 3) -> Page:
    return Page(
        items=tuple(make_post(i) for i in ids),
        cursor=PaginationCursor(
            current_page=current_page, last_page=last_page,
            per_page=per_page, total=last_page * per_page,
        ),
    )


# =============================================================================
# SESSION / TRANSPORT
# =============================================================================

def authenticated_session(user: UserProfile = VERIFIED_USER) -> SessionState:
    session = SessionState(MemoryCredentialStore())
    session.login(TOKEN, user)
    return session


def mock_transport(
    handler: Callable[[httpx.Request], httpx.Response],
    session: Optional[SessionState] = None
) -> ApiTransport:
    """ApiTransport whose requests are answered by `handler`."""
    return ApiTransport(
        session if session is not None else authenticated_session(),
        TransportConfig(base_url=BASE_URL),
        httpx.MockTransport(handler),
    )


async def settle(rounds: int = 10):
    """Let every runnable task advance to its next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# =============================================================================
# SCRIPTED REMOTES
# =============================================================================

@dataclass
class ScriptedCall:
    """One remote call whose outcome the test decides."""
    post_id: int
    argument: object
    result: asyncio.Future

    def succeed(self, value):
        self.result.set_result(value)

    def fail(self, error: Exception):
        self.result.set_exception(error)


class ScriptedCommunityClient:
    """
    Stand-in for CommunityClient.

    Every vote/comment call blocks until the test resolves it, so
    response ordering is fully under test control.
    """

    def __init__(self):
        self.vote_calls: List[ScriptedCall] = []
        self.comment_calls: List[ScriptedCall] = []
        self.comments: List[Comment] = []

    async def vote(self, post_id: int, direction: VoteChoice) -> VoteCounts:
        call = ScriptedCall(post_id, direction, asyncio.get_running_loop().create_future())
        self.vote_calls.append(call)
        return await call.result

    async def add_comment(self, post_id: int, content: str) -> Comment:
        call = ScriptedCall(post_id, content, asyncio.get_running_loop().create_future())
        self.comment_calls.append(call)
        return await call.result

    async def list_comments(self, post_id: int):
        return tuple(c for c in self.comments if c.post_id == post_id)

    async def delete_comment(self, post_id: int, comment_id: int) -> None:
        self.comments = [c for c in self.comments if c.id != comment_id]


class ScriptedPages:
    """
    Page fetcher for PaginatedFeedController.

    Pages are served from `pages` (page number -> Page). With
    `gated=True` each fetch blocks until release() is called.
    """

    def __init__(self, pages, gated: bool = False):
        self.pages = dict(pages)
        self.gated = gated
        self.requests: List[tuple] = []
        self._gates: List[asyncio.Future] = []

    async def __call__(self, page: int, **filters) -> Page:
        self.requests.append((page, dict(filters)))
        if self.gated:
            gate = asyncio.get_running_loop().create_future()
            self._gates.append(gate)
            await gate
        return self.pages[page]

    def release(self, index: int = 0):
        self._gates[index].set_result(None)
