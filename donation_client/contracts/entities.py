"""
Entity Contracts

Immutable records for every resource family the client caches.

PARSING CONTRACT:
=================
- from_payload() either returns a COMPLETE entity or raises
  MalformedResponse
- Relations (owner, location, event) are kept as ids
- Unknown extra fields are ignored
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Tuple, Union

from .base import MalformedResponse
from .votes import VoteState


EntityId = Union[int, str]


# =============================================================================
# PARSING HELPERS
# =============================================================================

def _require(payload: Any, kind: str, *keys: str) -> Mapping:
    if not isinstance(payload, Mapping):
        raise MalformedResponse(f"{kind} payload is not an object")
    missing = [k for k in keys if payload.get(k) is None]
    if missing:
        raise MalformedResponse(
            f"{kind} payload missing required fields: {', '.join(missing)}"
        )
    return payload


def _int(payload: Mapping, key: str, kind: str) -> int:
    try:
        return int(payload[key])
    except (TypeError, ValueError):
        raise MalformedResponse(f"{kind}.{key} is not an integer")


def _float(payload: Mapping, key: str, kind: str, default: float = 0.0) -> float:
    value = payload.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedResponse(f"{kind}.{key} is not a number")


def _relation_id(payload: Mapping, name: str) -> Optional[int]:
    """Relation is either embedded ({name: {id: ...}}) or flat ({name}_id)."""
    nested = payload.get(name)
    if isinstance(nested, Mapping) and nested.get("id") is not None:
        return int(nested["id"])
    flat = payload.get(f"{name}_id")
    return int(flat) if flat is not None else None


def _strings(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(str(v) for v in value)


# =============================================================================
# DONATIONS
# =============================================================================

@dataclass(frozen=True)
class DonationEvent:
    """A donation offer or request."""
    id: int
    title: str
    type: str  # "request" | "offer"
    status: str
    goal_amount: float
    current_amount: float
    description: str = ""
    possible_amount: float = 0.0
    unit: Optional[str] = None
    image_urls: Tuple[str, ...] = field(default_factory=tuple)
    user_id: Optional[int] = None
    location_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def progress(self) -> float:
        if self.goal_amount <= 0:
            return 0.0
        return min(1.0, self.current_amount / self.goal_amount)

    @classmethod
    def from_payload(cls, payload: Any) -> DonationEvent:
        kind = "DonationEvent"
        data = _require(payload, kind, "id", "title", "type", "status",
                        "goal_amount", "current_amount")
        return cls(
            id=_int(data, "id", kind),
            title=str(data["title"]),
            type=str(data["type"]),
            status=str(data["status"]),
            goal_amount=_float(data, "goal_amount", kind),
            current_amount=_float(data, "current_amount", kind),
            description=str(data.get("description") or ""),
            possible_amount=_float(data, "possible_amount", kind),
            unit=data.get("unit"),
            image_urls=_strings(data.get("image_urls")),
            user_id=_relation_id(data, "user"),
            location_id=_relation_id(data, "location"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass(frozen=True)
class DonationTransaction:
    """A contribution to (or claim from) a donation event."""
    id: int
    transaction_type: str  # "contribution" | "claim"
    amount: float
    status: str  # "pending" | "approved" | "declined"
    event_id: Optional[int] = None
    user_id: Optional[int] = None
    transaction_at: Optional[str] = None
    event: Optional[DonationEvent] = None

    @classmethod
    def from_payload(cls, payload: Any) -> DonationTransaction:
        kind = "DonationTransaction"
        data = _require(payload, kind, "id", "transaction_type", "amount", "status")
        event = None
        embedded = data.get("event")
        if isinstance(embedded, Mapping) and "current_amount" in embedded:
            event = DonationEvent.from_payload(embedded)
        return cls(
            id=_int(data, "id", kind),
            transaction_type=str(data["transaction_type"]),
            amount=_float(data, "amount", kind),
            status=str(data["status"]),
            event_id=event.id if event else _relation_id(data, "event"),
            user_id=_relation_id(data, "user"),
            transaction_at=data.get("transaction_at"),
            event=event,
        )


# =============================================================================
# COMMUNITY
# =============================================================================

@dataclass(frozen=True)
class CommunityPost:
    id: int
    content: str
    votes: VoteState = field(default_factory=VoteState)
    comments_count: int = 0
    tags: Tuple[str, ...] = field(default_factory=tuple)
    image_urls: Tuple[str, ...] = field(default_factory=tuple)
    user_id: Optional[int] = None
    event_id: Optional[int] = None
    created_at: Optional[str] = None

    def with_votes(self, votes: VoteState) -> CommunityPost:
        return replace(self, votes=votes)

    @classmethod
    def from_payload(cls, payload: Any) -> CommunityPost:
        kind = "CommunityPost"
        data = _require(payload, kind, "id", "content")
        votes = data.get("votes")
        if votes is None and "upvotes_count" in data:
            votes = {
                "upvotes": data.get("upvotes_count"),
                "downvotes": data.get("downvotes_count"),
                "user_vote": data.get("user_vote"),
            }
        return cls(
            id=_int(data, "id", kind),
            content=str(data["content"]),
            votes=VoteState.from_payload(votes),
            comments_count=int(data.get("comments_count") or 0),
            tags=_strings(data.get("tags")),
            image_urls=_strings(data.get("image_urls")),
            user_id=_relation_id(data, "user"),
            event_id=_relation_id(data, "event"),
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class Comment:
    """
    A comment on a community post.

    Optimistic placeholders carry a negative id and pending=True
    until the server-assigned comment replaces them.
    """
    id: int
    content: str
    post_id: Optional[int] = None
    user_id: Optional[int] = None
    created_at: Optional[str] = None
    pending: bool = False

    @classmethod
    def placeholder(cls, temp_id: int, post_id: int, content: str,
                    user_id: Optional[int] = None) -> Comment:
        return cls(id=temp_id, content=content, post_id=post_id,
                   user_id=user_id, pending=True)

    @classmethod
    def from_payload(cls, payload: Any) -> Comment:
        kind = "Comment"
        data = _require(payload, kind, "id", "content")
        post_id = data.get("post_id")
        return cls(
            id=_int(data, "id", kind),
            content=str(data["content"]),
            post_id=int(post_id) if post_id is not None else None,
            user_id=_relation_id(data, "user"),
            created_at=data.get("created_at"),
        )


# =============================================================================
# VERIFICATION / NOTIFICATIONS / USERS
# =============================================================================

@dataclass(frozen=True)
class Verification:
    id: int
    status: str  # "pending" | "approved" | "rejected"
    user_id: Optional[int] = None
    document_type: Optional[str] = None
    notes: Optional[str] = None
    image_urls: Tuple[str, ...] = field(default_factory=tuple)
    verified_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Verification:
        kind = "Verification"
        data = _require(payload, kind, "id", "status")
        return cls(
            id=_int(data, "id", kind),
            status=str(data["status"]),
            user_id=_relation_id(data, "user"),
            document_type=data.get("document_type"),
            notes=data.get("notes"),
            image_urls=_strings(data.get("image_urls")),
            verified_at=data.get("verified_at"),
            created_at=data.get("created_at"),
        )


def normalize_notification_type(name: Optional[str]) -> Optional[str]:
    """Collapse the server's donation/request type names to two buckets."""
    if not name:
        return name
    lowered = name.lower()
    if "donation" in lowered or "contribution" in lowered:
        return "donation_contribution"
    if "request" in lowered or "claim" in lowered:
        return "donation_claim"
    return name


@dataclass(frozen=True)
class Notification:
    id: EntityId
    title: str
    message: str = ""
    is_read: bool = False
    read_at: Optional[str] = None
    type_name: Optional[str] = None
    data: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    created_at: Optional[str] = None

    def mark_read(self, read_at: Optional[str]) -> Notification:
        return replace(self, is_read=True, read_at=read_at)

    @classmethod
    def from_payload(cls, payload: Any) -> Notification:
        data = _require(payload, "Notification", "id", "title")
        type_info = data.get("type")
        type_name = type_info.get("name") if isinstance(type_info, Mapping) else type_info
        extra = data.get("data") or {}
        return cls(
            id=data["id"],
            title=str(data["title"]),
            message=str(data.get("message") or ""),
            is_read=bool(data.get("is_read") or data.get("read_at")),
            read_at=data.get("read_at"),
            type_name=normalize_notification_type(type_name),
            data=tuple(sorted((str(k), str(v)) for k, v in extra.items()))
            if isinstance(extra, Mapping) else (),
            created_at=data.get("created_at"),
        )


# =============================================================================
# ANNOUNCEMENTS / LOCATIONS
# =============================================================================

ANNOUNCEMENT_PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class Announcement:
    """A blog post published by an administrator."""
    id: int
    title: str
    content: str
    priority: str = "medium"
    image_urls: Tuple[str, ...] = field(default_factory=tuple)
    user_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Announcement:
        kind = "Announcement"
        data = _require(payload, kind, "id", "title", "content")
        return cls(
            id=_int(data, "id", kind),
            title=str(data["title"]),
            content=str(data["content"]),
            priority=str(data.get("priority") or "medium"),
            image_urls=_strings(data.get("image_full_urls") or data.get("image_urls")),
            user_id=_relation_id(data, "user"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass(frozen=True)
class Location:
    id: int
    governorate: str
    district: str

    @property
    def label(self) -> str:
        return f"{self.district}, {self.governorate}"

    @classmethod
    def from_payload(cls, payload: Any) -> Location:
        kind = "Location"
        data = _require(payload, kind, "id", "governorate", "district")
        return cls(
            id=_int(data, "id", kind),
            governorate=str(data["governorate"]),
            district=str(data["district"]),
        )


@dataclass(frozen=True)
class UserProfile:
    """A platform user; the authenticated one is held in session state."""
    id: int
    username: str
    email: Optional[str] = None
    verified: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    location_id: Optional[int] = None

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.username

    @classmethod
    def from_payload(cls, payload: Any) -> UserProfile:
        kind = "UserProfile"
        data = _require(payload, kind, "id")
        return cls(
            id=_int(data, "id", kind),
            username=str(data.get("username") or data.get("name") or ""),
            email=data.get("email"),
            verified=bool(
                data.get("verified")
                or data.get("is_verified")
                or data.get("email_verified_at")
            ),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            phone=data.get("phone"),
            location_id=_relation_id(data, "location"),
        )

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "verified": self.verified,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "location_id": self.location_id,
        }
