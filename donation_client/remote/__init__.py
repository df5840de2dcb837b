"""
Remote Resource Client

Typed async wrappers over the donation platform REST API.
"""

from .transport import ApiTransport, TransportConfig, DEFAULT_BASE_URL, unwrap
from .resources import (
    ResourceClient, DonationEventsClient, TransactionsClient, CommunityClient,
    VerificationsClient, NotificationsClient, AnnouncementsClient, UsersClient,
    LocationsClient, AuthClient, DEFAULT_PER_PAGE,
)

__all__ = [
    'ApiTransport', 'TransportConfig', 'DEFAULT_BASE_URL', 'unwrap',
    'ResourceClient', 'DonationEventsClient', 'TransactionsClient',
    'CommunityClient', 'VerificationsClient', 'NotificationsClient',
    'AnnouncementsClient', 'UsersClient', 'LocationsClient',
    'AuthClient', 'DEFAULT_PER_PAGE',
]
