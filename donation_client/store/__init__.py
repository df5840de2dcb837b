"""
Local Entity Store

Per-resource caches and the repositories that fill them from
the remote client.
"""

from .entity_store import EntityStore, next_sequence
from .repository import (
    ResourceRepository, DonationRepository, NotificationRepository,
    FORBIDDEN_DONATION_MESSAGE,
)

__all__ = [
    'EntityStore', 'next_sequence',
    'ResourceRepository', 'DonationRepository', 'NotificationRepository',
    'FORBIDDEN_DONATION_MESSAGE',
]
