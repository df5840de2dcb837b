"""
Vote Contracts

Vote tallies for a community post and the transition table
that moves a user's choice between {none, upvote, downvote}.

INVARIANTS:
===========
- upvotes >= 0 and downvotes >= 0
- user_vote holds exactly one choice
- switching choice decrements the old tally and increments the new
  one in a single step
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple
from enum import Enum

from .base import MalformedResponse


class VoteChoice(Enum):
    """A user's vote on a post, as named on the wire."""
    NONE = "none"
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"

    @classmethod
    def parse(cls, raw: Optional[str]) -> VoteChoice:
        if raw is None or raw == "":
            return cls.NONE
        try:
            return cls(raw)
        except ValueError:
            raise MalformedResponse(f"Unknown vote type: {raw!r}")


# (from, to) -> (upvote delta, downvote delta)
TRANSITION_DELTAS: Dict[Tuple[VoteChoice, VoteChoice], Tuple[int, int]] = {
    (VoteChoice.NONE, VoteChoice.NONE): (0, 0),
    (VoteChoice.NONE, VoteChoice.UPVOTE): (1, 0),
    (VoteChoice.NONE, VoteChoice.DOWNVOTE): (0, 1),
    (VoteChoice.UPVOTE, VoteChoice.NONE): (-1, 0),
    (VoteChoice.UPVOTE, VoteChoice.UPVOTE): (0, 0),
    (VoteChoice.UPVOTE, VoteChoice.DOWNVOTE): (-1, 1),
    (VoteChoice.DOWNVOTE, VoteChoice.NONE): (0, -1),
    (VoteChoice.DOWNVOTE, VoteChoice.UPVOTE): (1, -1),
    (VoteChoice.DOWNVOTE, VoteChoice.DOWNVOTE): (0, 0),
}


@dataclass(frozen=True)
class VoteCounts:
    """Authoritative tallies returned by the vote endpoints."""
    upvotes: int
    downvotes: int

    @classmethod
    def from_payload(cls, payload: Mapping) -> VoteCounts:
        try:
            upvotes = int(payload["upvotes"])
            downvotes = int(payload["downvotes"])
        except (KeyError, TypeError, ValueError):
            raise MalformedResponse("Vote response is missing upvotes/downvotes")
        if upvotes < 0 or downvotes < 0:
            raise MalformedResponse("Vote response has negative tallies")
        return cls(upvotes=upvotes, downvotes=downvotes)


@dataclass(frozen=True)
class VoteState:
    """Tallies plus the current user's choice for one post."""
    upvotes: int = 0
    downvotes: int = 0
    user_vote: VoteChoice = VoteChoice.NONE

    def __post_init__(self):
        if self.upvotes < 0 or self.downvotes < 0:
            raise ValueError("Vote tallies must be non-negative")

    @property
    def total(self) -> int:
        return self.upvotes - self.downvotes

    def transition(self, target: VoteChoice) -> VoteState:
        """Apply the local delta for moving user_vote to target."""
        up, down = TRANSITION_DELTAS[(self.user_vote, target)]
        return VoteState(
            upvotes=max(0, self.upvotes + up),
            downvotes=max(0, self.downvotes + down),
            user_vote=target
        )

    def confirmed(self, counts: VoteCounts, choice: VoteChoice) -> VoteState:
        """Server counts replace local tallies; choice is the confirmed one."""
        return VoteState(
            upvotes=counts.upvotes,
            downvotes=counts.downvotes,
            user_vote=choice
        )

    @classmethod
    def from_payload(cls, payload: Optional[Mapping]) -> VoteState:
        if not payload:
            return cls()
        try:
            return cls(
                upvotes=int(payload.get("upvotes", 0) or 0),
                downvotes=int(payload.get("downvotes", 0) or 0),
                user_vote=VoteChoice.parse(payload.get("user_vote"))
            )
        except (TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid vote state: {e}")
