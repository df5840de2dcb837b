"""
Vote State Machine
==================

Pure transitions for one (post, user) vote.

PHASES:
=======
NONE       - no active vote, nothing in flight
UPVOTED    - confirmed upvote
DOWNVOTED  - confirmed downvote
PENDING    - a transition was applied locally and awaits the server

INVARIANTS:
===========
1. displayed == confirmed, or confirmed plus exactly ONE pending delta
2. confirm() takes the server's tallies verbatim
3. rollback() returns the exact pre-transition state
4. A new transition always starts from the confirmed state

This module holds NO I/O. The optimistic layer drives it.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional
from enum import Enum

from ..contracts.votes import VoteChoice, VoteCounts, VoteState


class VotePhase(Enum):
    NONE = "none"
    UPVOTED = "upvoted"
    DOWNVOTED = "downvoted"
    PENDING = "pending"


PHASE_FOR_CHOICE: Dict[VoteChoice, VotePhase] = {
    VoteChoice.NONE: VotePhase.NONE,
    VoteChoice.UPVOTE: VotePhase.UPVOTED,
    VoteChoice.DOWNVOTE: VotePhase.DOWNVOTED,
}


@dataclass(frozen=True)
class PendingTransition:
    """A locally applied transition awaiting confirmation."""
    target: VoteChoice
    sequence: int
    optimistic: VoteState


@dataclass(frozen=True)
class VoteMachine:
    """
    Immutable snapshot of one vote's machine.

    Every operation returns a new snapshot.
    """
    confirmed: VoteState
    pending: Optional[PendingTransition] = None

    @property
    def phase(self) -> VotePhase:
        if self.pending is not None:
            return VotePhase.PENDING
        return PHASE_FOR_CHOICE[self.confirmed.user_vote]

    @property
    def displayed(self) -> VoteState:
        """What the view shows: the optimistic state while pending."""
        if self.pending is not None:
            return self.pending.optimistic
        return self.confirmed

    @property
    def intended(self) -> VoteChoice:
        """The choice the user most recently asked for."""
        if self.pending is not None:
            return self.pending.target
        return self.confirmed.user_vote

    def begin(self, target: VoteChoice, sequence: int) -> VoteMachine:
        """Apply the local delta from the confirmed state and go PENDING."""
        return VoteMachine(
            confirmed=self.confirmed,
            pending=PendingTransition(
                target=target,
                sequence=sequence,
                optimistic=self.confirmed.transition(target)
            )
        )

    def confirm(self, counts: VoteCounts) -> VoteMachine:
        if self.pending is None:
            raise ValueError("No pending transition to confirm")
        return VoteMachine(
            confirmed=self.confirmed.confirmed(counts, self.pending.target)
        )

    def rollback(self) -> VoteMachine:
        return VoteMachine(confirmed=self.confirmed)
