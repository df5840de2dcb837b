"""
Optimistic Interaction Layer

Votes and comments that update local state ahead of the server.
"""

from .vote_machine import VoteMachine, VotePhase, PendingTransition, PHASE_FOR_CHOICE
from .optimistic import OptimisticInteractionLayer, InteractionConfig, VotePolicy

__all__ = [
    'VoteMachine', 'VotePhase', 'PendingTransition', 'PHASE_FOR_CHOICE',
    'OptimisticInteractionLayer', 'InteractionConfig', 'VotePolicy',
]
