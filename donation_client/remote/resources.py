"""
Remote Resource Clients

One typed client per resource family. Each operation is one request;
there is no caching and no retry at this layer.

DISCIPLINE:
===========
- get() maps 404 to Lookup.not_found - it NEVER raises NotFound
- every other failure propagates as the transport raised it
- responses are parsed into complete entities or MalformedResponse
"""

from __future__ import annotations
from typing import Any, Generic, Mapping, Optional, Sequence, Tuple, TypeVar

from ..contracts.base import MalformedResponse, NotFound, ValidationFailed
from ..contracts.entities import (
    EntityId, DonationEvent, DonationTransaction, CommunityPost, Comment,
    Verification, Notification, UserProfile, Announcement, Location,
    ANNOUNCEMENT_PRIORITIES
)
from ..contracts.envelope import Lookup, Page
from ..contracts.votes import VoteChoice, VoteCounts
from .transport import ApiTransport, FileField, unwrap


T = TypeVar('T')

DEFAULT_PER_PAGE = 10


class ResourceClient(Generic[T]):
    """
    Generic CRUD client for `/{resource}` routes.

    Subclasses set `path` and `entity_type`; extra operations live on the
    subclass that owns them.
    """

    path: str = ""
    entity_type: Any = None

    def __init__(self, transport: ApiTransport, per_page: int = DEFAULT_PER_PAGE):
        self._transport = transport
        self._per_page = per_page

    def _parse(self, raw: Any) -> T:
        return self.entity_type.from_payload(raw)

    async def _list(self, path: str, page: int, filters: Mapping[str, Any]) -> Page[T]:
        params = {'page': page, 'per_page': filters.get('per_page', self._per_page)}
        params.update({k: v for k, v in filters.items() if k != 'per_page'})
        body = await self._transport.request('GET', path, params=params)
        return Page.parse(body, self._parse, page, params['per_page'])

    async def list(self, page: int = 1, **filters: Any) -> Page[T]:
        return await self._list(self.path, page, filters)

    async def get(self, entity_id: EntityId) -> Lookup[T]:
        try:
            body = await self._transport.request('GET', f"{self.path}/{entity_id}")
        except NotFound:
            return Lookup.not_found(entity_id)
        return Lookup.of(entity_id, self._parse(unwrap(body)))

    async def create(
        self,
        payload: Mapping[str, Any],
        files: Optional[Sequence[FileField]] = None
    ) -> T:
        if files:
            body = await self._transport.request('POST', self.path, data=payload, files=files)
        else:
            body = await self._transport.request('POST', self.path, json=dict(payload))
        return self._parse(unwrap(body))

    async def update(
        self,
        entity_id: EntityId,
        payload: Mapping[str, Any],
        files: Optional[Sequence[FileField]] = None
    ) -> T:
        if files:
            # Multipart cannot ride on PUT for the server; tunnel it.
            body = await self._transport.request(
                'POST', f"{self.path}/{entity_id}",
                data=payload, files=files,
                headers={'X-HTTP-Method-Override': 'PUT'}
            )
        else:
            body = await self._transport.request(
                'PUT', f"{self.path}/{entity_id}", json=dict(payload)
            )
        return self._parse(unwrap(body))

    async def delete(self, entity_id: EntityId) -> None:
        body = await self._transport.request('DELETE', f"{self.path}/{entity_id}")
        if isinstance(body, Mapping) and body.get("success") is False:
            raise ValidationFailed(str(body.get("message") or "Delete was refused"))


# =============================================================================
# DONATIONS
# =============================================================================

class DonationEventsClient(ResourceClient[DonationEvent]):
    path = "/donation-events"
    entity_type = DonationEvent

    async def list_requests(self, page: int = 1, **filters: Any) -> Page[DonationEvent]:
        return await self._list(f"{self.path}/requests", page, filters)

    async def list_offers(self, page: int = 1, **filters: Any) -> Page[DonationEvent]:
        return await self._list(f"{self.path}/offers", page, filters)

    async def list_by_user(self, user_id: int, page: int = 1) -> Page[DonationEvent]:
        return await self._list(f"{self.path}/user/{user_id}", page, {})

    async def _status_action(self, event_id: int, action: str) -> DonationEvent:
        body = await self._transport.request('POST', f"{self.path}/{event_id}/{action}")
        return self._parse(unwrap(body))

    async def activate(self, event_id: int) -> DonationEvent:
        return await self._status_action(event_id, "activate")

    async def cancel(self, event_id: int) -> DonationEvent:
        return await self._status_action(event_id, "cancel")

    async def suspend(self, event_id: int) -> DonationEvent:
        return await self._status_action(event_id, "suspend")

    async def create_transaction(self, event_id: int, amount: float) -> DonationTransaction:
        body = await self._transport.request(
            'POST', f"{self.path}/{event_id}/transactions", json={'amount': amount}
        )
        return DonationTransaction.from_payload(unwrap(body))

    async def list_transactions(
        self,
        event_id: int,
        page: int = 1,
        status: Optional[str] = None,
        type: Optional[str] = None
    ) -> Page[DonationTransaction]:
        params = {'page': page, 'status': status, 'type': type}
        body = await self._transport.request(
            'GET', f"{self.path}/{event_id}/transactions", params=params,
            auth_required=True
        )
        return Page.parse(body, DonationTransaction.from_payload, page, self._per_page)


class TransactionsClient(ResourceClient[DonationTransaction]):
    path = "/donation-transactions"
    entity_type = DonationTransaction

    async def update_status(self, transaction_id: int, status: str) -> DonationTransaction:
        if status not in ("approved", "declined"):
            raise ValueError("status must be 'approved' or 'declined'")
        body = await self._transport.request(
            'PUT', f"{self.path}/{transaction_id}/status", json={'status': status}
        )
        return self._parse(unwrap(body))


# =============================================================================
# COMMUNITY
# =============================================================================

class CommunityClient(ResourceClient[CommunityPost]):
    path = "/community-posts"
    entity_type = CommunityPost

    async def vote(self, post_id: int, direction: VoteChoice) -> VoteCounts:
        if direction == VoteChoice.NONE:
            return await self.unvote(post_id)
        body = await self._transport.request(
            'POST', f"{self.path}/{post_id}/vote", json={'type': direction.value}
        )
        return VoteCounts.from_payload(unwrap(body))

    async def unvote(self, post_id: int) -> VoteCounts:
        body = await self._transport.request('DELETE', f"{self.path}/{post_id}/vote")
        return VoteCounts.from_payload(unwrap(body))

    async def my_vote(self, post_id: int) -> VoteChoice:
        body = await self._transport.request(
            'GET', f"{self.path}/{post_id}/my-vote", auth_required=True
        )
        data = body.get("data") if isinstance(body, Mapping) else None
        if data is None:
            return VoteChoice.NONE
        if not isinstance(data, Mapping):
            raise MalformedResponse("my-vote payload is not an object")
        return VoteChoice.parse(data.get("type"))

    async def list_comments(self, post_id: int) -> Tuple[Comment, ...]:
        body = await self._transport.request('GET', f"{self.path}/{post_id}/comments")
        page = Page.parse(body, Comment.from_payload, 1, DEFAULT_PER_PAGE)
        return tuple(_with_post(c, post_id) for c in page.items)

    async def add_comment(self, post_id: int, content: str) -> Comment:
        body = await self._transport.request(
            'POST', f"{self.path}/{post_id}/comments", json={'content': content}
        )
        return _with_post(Comment.from_payload(unwrap(body)), post_id)

    async def delete_comment(self, post_id: int, comment_id: int) -> None:
        await self._transport.request(
            'DELETE', f"{self.path}/{post_id}/comments/{comment_id}"
        )


def _with_post(comment: Comment, post_id: int) -> Comment:
    if comment.post_id == post_id:
        return comment
    return Comment(
        id=comment.id, content=comment.content, post_id=post_id,
        user_id=comment.user_id, created_at=comment.created_at
    )


# =============================================================================
# VERIFICATION
# =============================================================================

class VerificationsClient(ResourceClient[Verification]):
    path = "/verifications"
    entity_type = Verification

    async def list(self, page: int = 1, **filters: Any) -> Page[Verification]:
        params = {'page': page}
        params.update(filters)
        body = await self._transport.request('GET', self.path, params=params, auth_required=True)
        return Page.parse(body, self._parse, page, self._per_page)

    async def get(self, entity_id: EntityId) -> Lookup[Verification]:
        try:
            body = await self._transport.request(
                'GET', f"{self.path}/{entity_id}", auth_required=True
            )
        except NotFound:
            return Lookup.not_found(entity_id)
        return Lookup.of(entity_id, self._parse(unwrap(body)))

    async def mine(self) -> Tuple[Verification, ...]:
        body = await self._transport.request(
            'GET', f"{self.path}/my-verifications", auth_required=True
        )
        return Page.parse(body, self._parse, 1, self._per_page).items

    async def submit(self, document_type: str, files: Sequence[FileField]) -> Verification:
        return await self.create({'document_type': document_type}, files=files)

    async def update_status(self, verification_id: int, status: str,
                            notes: Optional[str] = None) -> Verification:
        body = await self._transport.request(
            'PUT', f"{self.path}/{verification_id}/{status}",
            json={'notes': notes} if notes else None
        )
        return self._parse(unwrap(body))


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationsClient(ResourceClient[Notification]):
    path = "/notifications"
    entity_type = Notification

    async def list(self, page: int = 1, type: Optional[str] = None,
                   unread_only: bool = False, **filters: Any) -> Page[Notification]:
        params = {'page': page, 'per_page': filters.get('per_page', self._per_page),
                  'type': type, 'unread_only': unread_only or None}
        body = await self._transport.request('GET', self.path, params=params, auth_required=True)
        return Page.parse(body, self._parse, page, params['per_page'])

    async def unread_count(self) -> int:
        body = await self._transport.request(
            'GET', f"{self.path}/unread-count", auth_required=True
        )
        try:
            return int((body or {}).get("unread_count") or 0)
        except (AttributeError, TypeError, ValueError):
            raise MalformedResponse("unread-count payload is invalid")

    async def mark_read(self, notification_id: EntityId) -> Notification:
        body = await self._transport.request('PUT', f"{self.path}/{notification_id}/read")
        return self._parse(unwrap(body))

    async def mark_all_read(self) -> None:
        await self._transport.request('PUT', f"{self.path}/mark-all-read")

    async def delete_all(self) -> None:
        await self._transport.request('DELETE', self.path)

    async def delete_read(self) -> None:
        await self._transport.request('DELETE', f"{self.path}/read")

    async def delete_unread(self) -> None:
        await self._transport.request('DELETE', f"{self.path}/unread")


# =============================================================================
# ANNOUNCEMENTS, USERS, LOCATIONS
# =============================================================================

class AnnouncementsClient(ResourceClient[Announcement]):
    """Blog announcements: public reads, admin-only writes."""
    path = "/announcements"
    entity_type = Announcement

    async def publish(
        self,
        title: str,
        content: str,
        priority: str = "medium",
        images: Optional[Sequence[FileField]] = None
    ) -> Announcement:
        if priority not in ANNOUNCEMENT_PRIORITIES:
            raise ValueError(f"priority must be one of {', '.join(ANNOUNCEMENT_PRIORITIES)}")
        payload = {'title': title, 'content': content, 'priority': priority}
        return await self.create(payload, files=images)

    async def revise(
        self,
        announcement_id: int,
        images: Optional[Sequence[FileField]] = None,
        remove_image_urls: Sequence[str] = (),
        **changes: Any
    ) -> Announcement:
        """Partial update; new images are added, listed urls removed."""
        payload = {k: v for k, v in changes.items() if v is not None}
        if remove_image_urls:
            payload['remove_image_urls'] = list(remove_image_urls)
        return await self.update(announcement_id, payload, files=images)


class UsersClient(ResourceClient[UserProfile]):
    """
    User administration (/users, admin only) and the caller's own
    profile (/user/profile).

    Profile reads and updates also refresh the session's user.
    """
    path = "/users"
    entity_type = UserProfile

    async def profile(self) -> UserProfile:
        body = await self._transport.request('GET', "/user/profile", auth_required=True)
        return self._remember(self._parse(unwrap(body)))

    async def update_profile(self, **changes: Any) -> UserProfile:
        payload = {k: v for k, v in changes.items() if v is not None}
        body = await self._transport.request('PUT', "/user/profile", json=payload)
        return self._remember(self._parse(unwrap(body)))

    async def promote_to_moderator(self, user_id: int) -> UserProfile:
        body = await self._transport.request('POST', f"{self.path}/{user_id}/promote-to-moderator")
        return self._parse(unwrap(body))

    def _remember(self, user: UserProfile) -> UserProfile:
        session = self._transport.session
        if session.user is None or session.user.id == user.id:
            session.update_user(user)
        return user


class LocationsClient(ResourceClient[Location]):
    """Governorate/district pairs. The list is small and not paginated."""
    path = "/locations"
    entity_type = Location

    async def list_all(self) -> Tuple[Location, ...]:
        body = await self._transport.request('GET', self.path)
        return Page.parse(body, self._parse, 1, DEFAULT_PER_PAGE).items


# =============================================================================
# AUTH
# =============================================================================

class AuthClient:
    """Login/logout against /auth; updates the injected session."""

    def __init__(self, transport: ApiTransport):
        self._transport = transport

    async def login(self, email: str, password: str) -> UserProfile:
        body = await self._transport.request(
            'POST', "/auth/login",
            json={'email': email, 'password': password},
            auth_required=False
        )
        data = unwrap(body)
        token = data.get("token") if isinstance(data, Mapping) else None
        if not token:
            raise MalformedResponse("Login response has no token")
        user = UserProfile.from_payload(data.get("user"))
        self._transport.session.login(str(token), user)
        return user

    async def me(self) -> UserProfile:
        body = await self._transport.request('GET', "/me", auth_required=True)
        user = UserProfile.from_payload(unwrap(body))
        self._transport.session.update_user(user)
        return user

    async def logout(self) -> None:
        try:
            if self._transport.session.is_authenticated:
                await self._transport.request('POST', "/auth/logout")
        finally:
            self._transport.session.logout()
