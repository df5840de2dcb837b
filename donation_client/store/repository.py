"""
Resource Repositories

Combine a remote client with an EntityStore and apply the fallback
policy for list refreshes.

FALLBACK POLICY:
================
- NotFound, ValidationFailed, NetworkFailure during a list refresh
  -> FetchOutcome(FALLBACK) with cached items (or the seeded fallback
     items when the cache is empty), error attached
- Unauthenticated, Forbidden, ServerError, MalformedResponse
  -> always propagate to the caller
- The store is never modified by a failed operation
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Generic, Iterable, Mapping, Optional, Sequence, Tuple, TypeVar

from ..contracts.base import FALLBACK_ERRORS, Forbidden, Unauthenticated
from ..contracts.entities import DonationEvent, DonationTransaction, EntityId, Notification
from ..contracts.envelope import DataSource, FetchOutcome, Lookup
from ..observability import AuditLog, AuditEventType
from ..remote.resources import DonationEventsClient, NotificationsClient, ResourceClient
from ..remote.transport import FileField
from ..session import SessionState
from .entity_store import EntityStore


E = TypeVar('E')

FORBIDDEN_DONATION_MESSAGE = "Only verified users can donate."


class ResourceRepository(Generic[E]):
    """Read-through cache for one resource family."""

    def __init__(
        self,
        client: ResourceClient,
        store: EntityStore[E],
        fallback_items: Iterable[E] = (),
        audit: Optional[AuditLog] = None
    ):
        self._client = client
        self._store = store
        self._fallback_items: Tuple[E, ...] = tuple(fallback_items)
        self._audit = audit or AuditLog()

    @property
    def store(self) -> EntityStore[E]:
        return self._store

    @property
    def client(self) -> ResourceClient:
        return self._client

    async def refresh(self, page: int = 1, **filters: Any) -> FetchOutcome[E]:
        """
        Full refresh of page `page`.

        Page 1 replaces the cached collection; later pages are merged.
        """
        sequence = self._store.next_sequence()
        try:
            result = await self._client.list(page, **filters)
        except FALLBACK_ERRORS as e:
            items = self._store.get_all() or self._fallback_items
            self._audit.record(
                AuditEventType.STORE, "store", "refresh", outcome="fallback",
                store=self._store.name, error=e.code.name
            )
            return FetchOutcome(source=DataSource.FALLBACK, items=items, error=e)

        if page == 1:
            self._store.replace_all(result.items, sequence)
        else:
            self._store.upsert_many(result.items, sequence)
        return FetchOutcome(
            source=DataSource.LIVE, items=result.items, cursor=result.cursor
        )

    async def load(self, entity_id: EntityId) -> Lookup[E]:
        """
        Fetch one entity and cache it.

        NOT_FOUND evicts any cached copy; the outcome is returned, never raised.
        """
        sequence = self._store.next_sequence()
        lookup = await self._client.get(entity_id)
        if lookup.found:
            self._store.upsert(lookup.entity, sequence)
        else:
            self._store.remove(entity_id, sequence)
        return lookup

    def cached(self, entity_id: EntityId) -> Optional[E]:
        return self._store.get_by_id(entity_id)

    async def create(
        self,
        payload: Mapping[str, Any],
        files: Optional[Sequence[FileField]] = None
    ) -> E:
        sequence = self._store.next_sequence()
        entity = await self._client.create(payload, files=files)
        if not self._store.insert_at_head(entity, sequence):
            self._store.upsert(entity, sequence)
        return entity

    async def update(
        self,
        entity_id: EntityId,
        payload: Mapping[str, Any],
        files: Optional[Sequence[FileField]] = None
    ) -> E:
        sequence = self._store.next_sequence()
        entity = await self._client.update(entity_id, payload, files=files)
        self._store.upsert(entity, sequence)
        return entity

    async def delete(self, entity_id: EntityId) -> None:
        sequence = self._store.next_sequence()
        await self._client.delete(entity_id)
        self._store.remove(entity_id, sequence)


class DonationRepository(ResourceRepository[DonationEvent]):
    """
    Donation events plus contributions.

    The event's amounts are ALWAYS taken from the server after a
    transaction; nothing is added up locally.
    """

    def __init__(
        self,
        client: DonationEventsClient,
        store: EntityStore[DonationEvent],
        session: SessionState,
        fallback_items: Iterable[DonationEvent] = (),
        audit: Optional[AuditLog] = None
    ):
        super().__init__(client, store, fallback_items, audit)
        self._session = session
        self._events_client = client

    async def refresh_requests(self, page: int = 1) -> FetchOutcome[DonationEvent]:
        return await self._refresh_filtered(page, type="request")

    async def refresh_offers(self, page: int = 1) -> FetchOutcome[DonationEvent]:
        return await self._refresh_filtered(page, type="offer")

    async def _refresh_filtered(self, page: int, type: str) -> FetchOutcome[DonationEvent]:
        outcome = await self.refresh(page, type=type)
        if outcome.is_live:
            return outcome
        return FetchOutcome(
            source=outcome.source,
            items=tuple(e for e in outcome.items if e.type == type),
            error=outcome.error
        )

    async def contribute(self, event_id: int, amount: float) -> DonationTransaction:
        """
        Create a contribution and reconcile the event from the server.

        Raises Forbidden with the user-visible reason for unverified users.
        """
        if amount <= 0:
            raise ValueError("amount must be positive")
        if not self._session.is_authenticated:
            raise Unauthenticated("Authentication required")
        user = self._session.user
        if user is not None and not user.verified:
            raise Forbidden(FORBIDDEN_DONATION_MESSAGE, 403)

        sequence = self._store.next_sequence()
        try:
            transaction = await self._events_client.create_transaction(event_id, amount)
        except Forbidden as e:
            raise Forbidden(e.message or FORBIDDEN_DONATION_MESSAGE, 403) from e

        if transaction.event is not None:
            self._store.upsert(transaction.event, sequence)
        else:
            await self.load(event_id)

        self._audit.record(
            AuditEventType.STORE, "store", "contribute", event_id,
            transaction_id=transaction.id, amount=amount
        )
        return transaction


class NotificationRepository(ResourceRepository[Notification]):
    """Notifications with read-state kept in sync locally."""

    def __init__(
        self,
        client: NotificationsClient,
        store: EntityStore[Notification],
        audit: Optional[AuditLog] = None
    ):
        super().__init__(client, store, (), audit)
        self._notifications = client

    def unread(self) -> Tuple[Notification, ...]:
        return tuple(n for n in self._store.get_all() if not n.is_read)

    async def unread_count(self) -> int:
        return await self._notifications.unread_count()

    async def mark_read(self, notification_id: EntityId) -> Notification:
        sequence = self._store.next_sequence()
        notification = await self._notifications.mark_read(notification_id)
        self._store.upsert(notification, sequence)
        return notification

    async def mark_all_read(self) -> None:
        sequence = self._store.next_sequence()
        await self._notifications.mark_all_read()
        now = datetime.now(timezone.utc).isoformat()
        for notification in self.unread():
            self._store.upsert(notification.mark_read(now), sequence)

    async def delete_read(self) -> None:
        sequence = self._store.next_sequence()
        await self._notifications.delete_read()
        for notification in self._store.get_all():
            if notification.is_read:
                self._store.remove(notification.id, sequence)

    async def delete_all(self) -> None:
        await self._notifications.delete_all()
        self._store.clear()
