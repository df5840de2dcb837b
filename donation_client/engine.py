"""
Client Orchestration Module

Wires session, transport, stores and interaction layers into one
object a view layer can hold.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The session is injected, never read from an ambient global
3. All operations are traceable through the shared AuditLog
4. Logout tears down every per-user cache
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple
import logging
import os

import httpx

from .contracts.entities import (
    Announcement, CommunityPost, DonationEvent, DonationTransaction, Location,
    Notification, UserProfile, Verification
)
from .feed import FeedConfig, PaginatedFeedController
from .interaction import InteractionConfig, OptimisticInteractionLayer, VotePolicy
from .observability import AuditLog, AuditEventType
from .remote import (
    AnnouncementsClient, ApiTransport, AuthClient, CommunityClient, DonationEventsClient,
    LocationsClient, NotificationsClient, TransactionsClient, TransportConfig,
    UsersClient, VerificationsClient,
)
from .remote.transport import DEFAULT_BASE_URL, FileField
from .session import FileCredentialStore, SessionState
from .store import DonationRepository, EntityStore, NotificationRepository, ResourceRepository


logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Unified configuration for the whole client."""
    transport: TransportConfig = None
    feed: FeedConfig = None
    interaction: InteractionConfig = None
    credentials_path: Optional[Path] = None
    fallback_events: Tuple[DonationEvent, ...] = ()
    audit_max_entries: int = 10_000

    def __post_init__(self):
        self.transport = self.transport or TransportConfig()
        self.feed = self.feed or FeedConfig()
        self.interaction = self.interaction or InteractionConfig()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> ClientConfig:
        """
        Build from DONATION_* environment variables.

        DONATION_API_BASE_URL, DONATION_API_TIMEOUT,
        DONATION_CREDENTIALS_PATH, DONATION_VOTE_POLICY (reject|supersede)
        """
        env = os.environ if environ is None else environ
        timeout = env.get("DONATION_API_TIMEOUT")
        try:
            policy = VotePolicy(env.get("DONATION_VOTE_POLICY", "reject").lower())
        except ValueError:
            raise ValueError(
                f"DONATION_VOTE_POLICY must be one of "
                f"{', '.join(p.value for p in VotePolicy)}"
            )
        credentials = env.get("DONATION_CREDENTIALS_PATH")
        return cls(
            transport=TransportConfig(
                base_url=env.get("DONATION_API_BASE_URL", DEFAULT_BASE_URL),
                timeout=float(timeout) if timeout else 30.0,
            ),
            interaction=InteractionConfig(vote_policy=policy),
            credentials_path=Path(credentials).expanduser() if credentials else None,
        )


class DonationPlatformClient:
    """
    Unified client for the donation platform.

    LAYER FLOW:
    ===========
    1. Session: credential + user, hydrated from the credential store
    2. Remote: typed clients over one ApiTransport
    3. Store: per-resource EntityStores behind repositories
    4. Interaction: optimistic votes/comments on the post store
    5. Feed: paginated controllers over the post, event and announcement stores
    6. Observability: one AuditLog shared by every layer
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        session: Optional[SessionState] = None
    ):
        self._config = config or ClientConfig()
        self._audit = AuditLog(self._config.audit_max_entries)

        if session is None:
            store = (
                FileCredentialStore(self._config.credentials_path)
                if self._config.credentials_path else None
            )
            session = SessionState(store)
        self._session = session

        self._api = ApiTransport(
            session, self._config.transport, http_transport, self._audit
        )
        per_page = self._config.feed.per_page

        # Remote clients
        self.auth = AuthClient(self._api)
        self.donation_events = DonationEventsClient(self._api, per_page)
        self.transactions_api = TransactionsClient(self._api, per_page)
        self.community_api = CommunityClient(self._api, per_page)
        self.verifications_api = VerificationsClient(self._api, per_page)
        self.notifications_api = NotificationsClient(self._api, per_page)
        self.announcements_api = AnnouncementsClient(self._api, per_page)
        self.users_api = UsersClient(self._api, per_page)
        self.locations_api = LocationsClient(self._api, per_page)

        # Stores
        self.events: EntityStore[DonationEvent] = EntityStore("donation_events", self._audit)
        self.posts: EntityStore[CommunityPost] = EntityStore("community_posts", self._audit)
        self.notification_store: EntityStore[Notification] = EntityStore("notifications", self._audit)
        self.verification_store: EntityStore[Verification] = EntityStore("verifications", self._audit)
        self.transaction_store: EntityStore[DonationTransaction] = EntityStore("transactions", self._audit)
        self.announcement_store: EntityStore[Announcement] = EntityStore("announcements", self._audit)
        self.location_store: EntityStore[Location] = EntityStore("locations", self._audit)

        # Repositories
        self.donations = DonationRepository(
            self.donation_events, self.events, session,
            self._config.fallback_events, self._audit
        )
        self.notifications = NotificationRepository(
            self.notifications_api, self.notification_store, self._audit
        )
        self.verifications = ResourceRepository(
            self.verifications_api, self.verification_store, audit=self._audit
        )
        self.transactions = ResourceRepository(
            self.transactions_api, self.transaction_store, audit=self._audit
        )
        self.announcements = ResourceRepository(
            self.announcements_api, self.announcement_store, audit=self._audit
        )
        self.locations = ResourceRepository(
            self.locations_api, self.location_store, audit=self._audit
        )

        # Interaction and feeds
        self.interactions = OptimisticInteractionLayer(
            self.community_api, self.posts, self._config.interaction, self._audit
        )
        self.community_feed: PaginatedFeedController[CommunityPost] = PaginatedFeedController(
            self.community_api.list, self.posts, self._config.feed,
            self._audit, "community"
        )
        self.donation_feed: PaginatedFeedController[DonationEvent] = PaginatedFeedController(
            self.donation_events.list, self.events, self._config.feed,
            self._audit, "donations"
        )
        self.announcement_feed: PaginatedFeedController[Announcement] = PaginatedFeedController(
            self.announcements_api.list, self.announcement_store, self._config.feed,
            self._audit, "announcements"
        )

        self._unregister_teardown = session.on_logout(self._teardown)

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def audit(self) -> AuditLog:
        return self._audit

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    def start(self) -> bool:
        """Hydrate the session from the credential store."""
        restored = self._session.hydrate()
        self._audit.record(
            AuditEventType.SESSION, "session", "hydrate",
            outcome="success" if restored else "anonymous"
        )
        return restored

    async def login(self, email: str, password: str) -> UserProfile:
        user = await self.auth.login(email, password)
        self._audit.record(AuditEventType.SESSION, "session", "login", user.id)
        return user

    async def logout(self) -> None:
        await self.auth.logout()

    def _teardown(self):
        self.interactions.reset()
        self.community_feed.reset()
        self.donation_feed.reset()
        for store in (self.notification_store, self.verification_store, self.transaction_store):
            store.clear()
        self._audit.record(AuditEventType.SESSION, "session", "teardown")
        logger.info("Session ended; per-user caches cleared")

    # =========================================================================
    # COMPOSITE OPERATIONS
    # =========================================================================

    async def create_post(
        self,
        content: str,
        event_id: int,
        tags: Sequence[str] = (),
        images: Optional[Sequence[FileField]] = None
    ) -> CommunityPost:
        """Create a post and place it at the head of the community feed."""
        payload: dict = {'content': content, 'event_id': event_id}
        if tags:
            payload['tags'] = list(tags)
        post = await self.community_api.create(payload, files=images)
        self.community_feed.inject(post)
        return post

    async def publish_announcement(
        self,
        title: str,
        content: str,
        priority: str = "medium",
        images: Optional[Sequence[FileField]] = None
    ) -> Announcement:
        """Publish an announcement and place it at the head of its feed."""
        announcement = await self.announcements_api.publish(title, content, priority, images)
        self.announcement_feed.inject(announcement)
        return announcement

    async def contribute(self, event_id: int, amount: float) -> DonationTransaction:
        return await self.donations.contribute(event_id, amount)

    async def aclose(self):
        self._unregister_teardown()
        await self._api.aclose()

    async def __aenter__(self) -> DonationPlatformClient:
        return self

    async def __aexit__(self, *exc_info: Any):
        await self.aclose()
