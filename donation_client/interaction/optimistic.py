"""
Optimistic Interaction Layer

Votes and comments applied to the local store before the server
confirms them, then reconciled or rolled back.

GUARANTEES:
===========
1. At most one in-flight vote request per post
2. A repeated intent while pending joins the in-flight request
3. A failed vote restores the exact pre-action tallies and choice
4. Store writes carry the request's sequence number, so a late
   response to an older request never overwrites newer state
5. Comment placeholders never outlive their request
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple
from enum import Enum
import asyncio
import itertools
import logging

from ..contracts.base import ClientError, NotFound, VotePending, VoteSuperseded
from ..contracts.entities import Comment, CommunityPost
from ..contracts.votes import VoteChoice, VoteState
from ..observability import AuditLog, AuditEventType
from ..remote.resources import CommunityClient
from ..store.entity_store import EntityStore
from .vote_machine import VoteMachine, VotePhase


logger = logging.getLogger(__name__)


class VotePolicy(Enum):
    """What to do with a different vote while one is pending."""
    REJECT = "reject"
    SUPERSEDE = "supersede"


@dataclass
class InteractionConfig:
    vote_policy: VotePolicy = VotePolicy.REJECT


@dataclass
class _InFlightVote:
    machine: VoteMachine
    task: Optional[asyncio.Task] = None
    predecessor: Optional[_InFlightVote] = None
    superseded: bool = False
    settled: Optional[VoteState] = None


class OptimisticInteractionLayer:
    """
    Vote and comment mutators for the current session user.

    Posts must already be in `posts` (loaded by a feed or repository)
    before they can be voted on.
    """

    def __init__(
        self,
        client: CommunityClient,
        posts: EntityStore[CommunityPost],
        config: Optional[InteractionConfig] = None,
        audit: Optional[AuditLog] = None
    ):
        self._client = client
        self._posts = posts
        self._config = config or InteractionConfig()
        self._audit = audit or AuditLog()
        self._in_flight: Dict[int, _InFlightVote] = {}
        self._comments: Dict[int, EntityStore[Comment]] = {}
        self._temp_ids = itertools.count(-1, -1)

    @property
    def policy(self) -> VotePolicy:
        return self._config.vote_policy

    # =========================================================================
    # VOTE QUERIES
    # =========================================================================

    def phase(self, post_id: int) -> VotePhase:
        in_flight = self._in_flight.get(post_id)
        if in_flight is not None:
            return in_flight.machine.phase
        return VoteMachine(confirmed=self._post(post_id).votes).phase

    def vote_state(self, post_id: int) -> VoteState:
        """Tallies and choice as currently displayed."""
        return self._post(post_id).votes

    def is_pending(self, post_id: int) -> bool:
        return post_id in self._in_flight

    # =========================================================================
    # VOTE MUTATORS
    # =========================================================================

    async def upvote(self, post_id: int) -> VoteState:
        return await self.vote(post_id, VoteChoice.UPVOTE)

    async def downvote(self, post_id: int) -> VoteState:
        return await self.vote(post_id, VoteChoice.DOWNVOTE)

    async def unvote(self, post_id: int) -> VoteState:
        return await self.vote(post_id, VoteChoice.NONE)

    async def toggle(self, post_id: int, direction: VoteChoice) -> VoteState:
        """Button semantics: pressing the active direction again unvotes."""
        in_flight = self._in_flight.get(post_id)
        current = (
            in_flight.machine.intended if in_flight is not None
            else self._post(post_id).votes.user_vote
        )
        target = VoteChoice.NONE if current == direction else direction
        return await self.vote(post_id, target)

    async def vote(self, post_id: int, target: VoteChoice) -> VoteState:
        """
        Move the user's vote on `post_id` to `target`.

        Returns the confirmed VoteState. Raises the server's error after
        rolling back, VotePending under REJECT, or VoteSuperseded when a
        newer vote replaced this one under SUPERSEDE.

        Under SUPERSEDE the new choice is displayed at once, but its
        request waits until the superseded one has settled and is then
        issued against that settled state. A superseded request that
        has not been sent yet is dropped.
        """
        post = self._post(post_id)
        in_flight = self._in_flight.get(post_id)

        if in_flight is not None:
            if in_flight.machine.pending.target == target:
                self._audit.record(
                    AuditEventType.INTERACTION, "interaction", "vote_join", post_id,
                    target=target.value
                )
                return await self._await(in_flight)
            if self.policy == VotePolicy.REJECT:
                self._audit.record(
                    AuditEventType.INTERACTION, "interaction", "vote", post_id,
                    outcome="rejected", target=target.value
                )
                raise VotePending(f"A vote on post {post_id} is already pending")
            in_flight.superseded = True
            confirmed = in_flight.machine.confirmed
        else:
            confirmed = post.votes
            if target == confirmed.user_vote:
                return confirmed

        sequence = self._posts.next_sequence()
        machine = VoteMachine(confirmed=confirmed).begin(target, sequence)
        self._write_votes(post_id, machine.displayed, sequence)
        self._audit.record(
            AuditEventType.INTERACTION, "interaction", "vote_begin", post_id,
            target=target.value, sequence=sequence, superseding=in_flight is not None
        )

        entry = _InFlightVote(machine=machine, predecessor=in_flight)
        entry.task = asyncio.ensure_future(self._send_vote(post_id, entry))
        entry.task.add_done_callback(_consume_result)
        self._in_flight[post_id] = entry
        return await self._await(entry)

    async def _send_vote(self, post_id: int, entry: _InFlightVote) -> VoteState:
        machine = entry.machine
        pending = machine.pending

        if entry.predecessor is not None:
            # The server toggles a repeated vote off, so the next request
            # must start from what the previous one actually did.
            predecessor = entry.predecessor
            await asyncio.wait([predecessor.task])
            entry.predecessor = None
            basis = predecessor.settled
            if basis is None:
                basis = predecessor.machine.confirmed
            machine = VoteMachine(confirmed=basis).begin(pending.target, pending.sequence)
            if entry.superseded:
                entry.settled = basis
                self._audit.record(
                    AuditEventType.INTERACTION, "interaction", "vote", post_id,
                    outcome="dropped", sequence=pending.sequence
                )
                return basis
            if basis.user_vote == pending.target:
                entry.settled = basis
                self._write_votes(post_id, basis, pending.sequence)
                self._release(post_id, pending.sequence)
                self._audit.record(
                    AuditEventType.INTERACTION, "interaction", "vote", post_id,
                    outcome="already_applied", sequence=pending.sequence
                )
                return basis

        try:
            counts = await self._client.vote(post_id, pending.target)
        except asyncio.CancelledError:
            self._audit.record(
                AuditEventType.INTERACTION, "interaction", "vote", post_id,
                outcome="cancelled", sequence=pending.sequence
            )
            raise
        except ClientError as e:
            restored = machine.rollback()
            entry.settled = restored.confirmed
            self._write_votes(post_id, restored.displayed, pending.sequence)
            self._release(post_id, pending.sequence)
            self._audit.record(
                AuditEventType.INTERACTION, "interaction", "vote", post_id,
                outcome="rolled_back", error=e.code.name, sequence=pending.sequence
            )
            raise

        settled = machine.confirm(counts)
        entry.settled = settled.confirmed
        self._write_votes(post_id, settled.confirmed, pending.sequence)
        self._release(post_id, pending.sequence)
        self._audit.record(
            AuditEventType.INTERACTION, "interaction", "vote", post_id,
            target=pending.target.value, sequence=pending.sequence
        )
        return settled.confirmed

    async def _await(self, entry: _InFlightVote) -> VoteState:
        # shield: one caller being cancelled must not cancel a shared request
        try:
            result = await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            if entry.task.cancelled():
                raise VoteSuperseded("A newer vote replaced this one")
            raise
        except ClientError:
            if entry.superseded:
                raise VoteSuperseded("A newer vote replaced this one") from None
            raise
        if entry.superseded:
            raise VoteSuperseded("A newer vote replaced this one")
        return result

    def _release(self, post_id: int, sequence: int):
        in_flight = self._in_flight.get(post_id)
        if in_flight is not None and in_flight.machine.pending.sequence == sequence:
            del self._in_flight[post_id]

    def _write_votes(self, post_id: int, votes: VoteState, sequence: int):
        post = self._posts.get_by_id(post_id)
        if post is None:
            logger.debug("Post %s left the store before its vote settled", post_id)
            return
        self._posts.upsert(post.with_votes(votes), sequence)

    def _post(self, post_id: int) -> CommunityPost:
        post = self._posts.get_by_id(post_id)
        if post is None:
            raise NotFound(f"Community post {post_id} is not loaded")
        return post

    # =========================================================================
    # COMMENTS
    # =========================================================================

    def comments(self, post_id: int) -> Tuple[Comment, ...]:
        return self._comment_store(post_id).get_all()

    def comment_store(self, post_id: int) -> EntityStore[Comment]:
        return self._comment_store(post_id)

    async def load_comments(self, post_id: int) -> Tuple[Comment, ...]:
        store = self._comment_store(post_id)
        sequence = store.next_sequence()
        items = await self._client.list_comments(post_id)
        # Placeholders still in flight survive a reload.
        pending = tuple(c for c in store.get_all() if c.pending)
        store.replace_all(items + pending, sequence)
        return store.get_all()

    async def add_comment(
        self,
        post_id: int,
        content: str,
        user_id: Optional[int] = None
    ) -> Comment:
        """
        Append a placeholder, then swap in the server's comment.

        On failure the placeholder is removed and the error re-raised.
        """
        if not content.strip():
            raise ValueError("Comment content must not be empty")
        store = self._comment_store(post_id)
        placeholder = Comment.placeholder(next(self._temp_ids), post_id, content, user_id)
        store.upsert(placeholder)

        try:
            comment = await self._client.add_comment(post_id, content)
        except ClientError as e:
            store.remove(placeholder.id)
            self._audit.record(
                AuditEventType.INTERACTION, "interaction", "comment", post_id,
                outcome="rolled_back", error=e.code.name
            )
            raise

        store.swap(placeholder.id, comment, store.next_sequence())
        self._adjust_comment_count(post_id, 1)
        self._audit.record(
            AuditEventType.INTERACTION, "interaction", "comment", post_id,
            comment_id=comment.id
        )
        return comment

    async def delete_comment(self, post_id: int, comment_id: int) -> None:
        store = self._comment_store(post_id)
        sequence = store.next_sequence()
        await self._client.delete_comment(post_id, comment_id)
        if store.remove(comment_id, sequence):
            self._adjust_comment_count(post_id, -1)

    def _adjust_comment_count(self, post_id: int, delta: int):
        # Unsequenced: a count bump must not fence off a pending vote's write.
        post = self._posts.get_by_id(post_id)
        if post is not None:
            self._posts.upsert(
                replace(post, comments_count=max(0, post.comments_count + delta))
            )

    def _comment_store(self, post_id: int) -> EntityStore[Comment]:
        store = self._comments.get(post_id)
        if store is None:
            store = EntityStore(f"comments:{post_id}", self._audit)
            self._comments[post_id] = store
        return store

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def reset(self):
        """Cancel in-flight votes and drop comment caches (session end)."""
        for in_flight in self._in_flight.values():
            entry = in_flight
            while entry is not None:
                entry.task.cancel()
                entry = entry.predecessor
        self._in_flight.clear()
        self._comments.clear()


def _consume_result(task: asyncio.Task):
    # Callers re-raise; this only silences "exception was never retrieved".
    if not task.cancelled():
        task.exception()
