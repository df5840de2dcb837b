"""
Contracts

Immutable types shared by every layer: entities, vote state,
pagination envelopes, and the error taxonomy.
"""

from .base import (
    ErrorCode, Error, ClientError,
    NetworkFailure, Unauthenticated, Forbidden, NotFound,
    ValidationFailed, ServerError, MalformedResponse,
    VotePending, VoteSuperseded,
    SURFACED_ERRORS, FALLBACK_ERRORS,
)
from .votes import VoteChoice, VoteCounts, VoteState, TRANSITION_DELTAS
from .entities import (
    EntityId, DonationEvent, DonationTransaction, CommunityPost, Comment,
    Verification, Notification, UserProfile, normalize_notification_type,
    Announcement, Location, ANNOUNCEMENT_PRIORITIES,
)
from .envelope import (
    PaginationCursor, Page, Lookup, LookupStatus, DataSource, FetchOutcome,
)

__all__ = [
    'ErrorCode', 'Error', 'ClientError',
    'NetworkFailure', 'Unauthenticated', 'Forbidden', 'NotFound',
    'ValidationFailed', 'ServerError', 'MalformedResponse',
    'VotePending', 'VoteSuperseded',
    'SURFACED_ERRORS', 'FALLBACK_ERRORS',
    'VoteChoice', 'VoteCounts', 'VoteState', 'TRANSITION_DELTAS',
    'EntityId', 'DonationEvent', 'DonationTransaction', 'CommunityPost',
    'Comment', 'Verification', 'Notification', 'UserProfile',
    'normalize_notification_type',
    'Announcement', 'Location', 'ANNOUNCEMENT_PRIORITIES',
    'PaginationCursor', 'Page', 'Lookup', 'LookupStatus', 'DataSource',
    'FetchOutcome',
]
