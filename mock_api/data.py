"""
Mock API Data
=============

In-memory records for the development mock API, plus the wire
serialisation the real backend uses (Laravel resource shapes).

Everything here is mutable and process-local. A fresh MockDatabase
is created per app, so tests never share state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
import itertools
import math


def now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class UserRecord:
    id: int
    username: str
    email: str
    password: str
    verified: bool
    is_admin: bool = False
    is_moderator: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    location_id: Optional[int] = None


@dataclass
class EventRecord:
    id: int
    title: str
    type: str
    status: str
    goal_amount: float
    current_amount: float
    user_id: int
    description: str = ""
    possible_amount: float = 0.0
    unit: Optional[str] = None
    created_at: str = field(default_factory=now)


@dataclass
class PostRecord:
    id: int
    content: str
    user_id: int
    event_id: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=now)


@dataclass
class CommentRecord:
    id: int
    post_id: int
    user_id: int
    content: str
    created_at: str = field(default_factory=now)


@dataclass
class TransactionRecord:
    id: int
    event_id: int
    user_id: int
    amount: float
    transaction_type: str = "contribution"
    status: str = "pending"
    transaction_at: str = field(default_factory=now)


@dataclass
class NotificationRecord:
    id: int
    user_id: int
    title: str
    message: str
    type_name: str
    read_at: Optional[str] = None
    data: Dict[str, str] = field(default_factory=dict)
    created_at: str = field(default_factory=now)


@dataclass
class AnnouncementRecord:
    id: int
    user_id: int
    title: str
    content: str
    priority: str = "medium"
    image_urls: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=now)
    updated_at: str = field(default_factory=now)


@dataclass
class LocationRecord:
    id: int
    governorate: str
    district: str


@dataclass
class VerificationRecord:
    id: int
    user_id: int
    document_type: str
    status: str = "pending"
    notes: Optional[str] = None


def paginate(items: List[dict], page: int, per_page: int) -> dict:
    """Laravel paginator envelope."""
    total = len(items)
    last_page = max(1, math.ceil(total / per_page))
    start = (page - 1) * per_page
    return {
        "data": items[start:start + per_page],
        "meta": {
            "current_page": page,
            "last_page": last_page,
            "per_page": per_page,
            "total": total,
        },
    }


class MockDatabase:
    """
    Seeded in-memory state.

    Tokens are "<username>-token". alice is verified, bob is not,
    admin can moderate.
    """

    def __init__(self, post_count: int = 25, auto_approve: bool = False):
        self.auto_approve = auto_approve
        self._ids = {name: itertools.count(1) for name in (
            "user", "event", "post", "comment", "transaction",
            "notification", "verification", "announcement", "location",
        )}
        self.users: Dict[int, UserRecord] = {}
        self.tokens: Dict[str, int] = {}
        self.events: Dict[int, EventRecord] = {}
        self.posts: Dict[int, PostRecord] = {}
        self.comments: Dict[int, CommentRecord] = {}
        self.votes: Dict[Tuple[int, int], str] = {}
        self.transactions: Dict[int, TransactionRecord] = {}
        self.notifications: Dict[int, NotificationRecord] = {}
        self.verifications: Dict[int, VerificationRecord] = {}
        self.announcements: Dict[int, AnnouncementRecord] = {}
        self.locations: Dict[int, LocationRecord] = {}
        # (method, path) -> status; consumed by the failure middleware
        self.injected_failures: Dict[Tuple[str, str], int] = {}
        self._seed(post_count)

    def next_id(self, kind: str) -> int:
        return next(self._ids[kind])

    # =========================================================================
    # SEED
    # =========================================================================

    def _seed(self, post_count: int):
        for governorate, district in (
            ("Beirut", "Achrafieh"), ("Beirut", "Hamra"),
            ("Mount Lebanon", "Jounieh"), ("North", "Tripoli"), ("South", "Sidon"),
        ):
            location = LocationRecord(
                id=self.next_id("location"), governorate=governorate, district=district
            )
            self.locations[location.id] = location

        for username, verified, is_admin in (
            ("alice", True, False), ("bob", False, False), ("admin", True, True)
        ):
            user = UserRecord(
                id=self.next_id("user"), username=username,
                email=f"{username}@example.com", password="secret",
                verified=verified, is_admin=is_admin, location_id=1,
            )
            self.users[user.id] = user
            self.tokens[f"{username}-token"] = user.id

        seeds = (
            ("Winter coats for shelters", "request", 500.0, 100.0, 3),
            ("School supplies drive", "request", 300.0, 120.0, 3),
            ("Surplus canned food", "offer", 200.0, 0.0, 1),
            ("Blankets for families", "request", 150.0, 150.0, 1),
        )
        for title, kind, goal, current, owner in seeds:
            event = EventRecord(
                id=self.next_id("event"), title=title, type=kind,
                status="active", goal_amount=goal, current_amount=current,
                user_id=owner, possible_amount=goal - current,
            )
            self.events[event.id] = event

        for n in range(post_count):
            post = PostRecord(
                id=self.next_id("post"),
                content=f"Community update #{n + 1}",
                user_id=(n % 3) + 1,
                event_id=(n % len(seeds)) + 1,
                tags=["update"],
            )
            self.posts[post.id] = post

        for title, priority in (
            ("Volunteer orientation on Saturday", "medium"),
            ("Warehouse closed for inventory", "high"),
        ):
            announcement = AnnouncementRecord(
                id=self.next_id("announcement"), user_id=3, title=title,
                content=f"{title}. Details inside.", priority=priority,
            )
            self.announcements[announcement.id] = announcement

        # Newest first, the same way the API orders the feed.
        self.posts = dict(sorted(self.posts.items(), key=lambda kv: -kv[0]))

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def user_for_token(self, token: Optional[str]) -> Optional[UserRecord]:
        user_id = self.tokens.get(token or "")
        return self.users.get(user_id) if user_id else None

    def vote_counts(self, post_id: int) -> Tuple[int, int]:
        up = sum(1 for (p, _), t in self.votes.items() if p == post_id and t == "upvote")
        down = sum(1 for (p, _), t in self.votes.items() if p == post_id and t == "downvote")
        return up, down

    def cast_vote(self, post_id: int, user_id: int, vote_type: str):
        """Same type again removes the vote; a different type switches it."""
        key = (post_id, user_id)
        if self.votes.get(key) == vote_type:
            del self.votes[key]
        else:
            self.votes[key] = vote_type

    def record_transaction(self, event: EventRecord, user: UserRecord,
                           amount: float) -> TransactionRecord:
        transaction = TransactionRecord(
            id=self.next_id("transaction"), event_id=event.id,
            user_id=user.id, amount=amount,
            transaction_type="contribution" if event.type == "request" else "claim",
        )
        self.transactions[transaction.id] = transaction
        if self.auto_approve:
            self.apply_status(transaction, "approved")
        self.notify(
            event.user_id, "New contribution",
            f"{user.username} contributed {amount:g} to {event.title}",
            "transaction_contribution",
            {"event_id": str(event.id), "transaction_id": str(transaction.id)},
        )
        return transaction

    def apply_status(self, transaction: TransactionRecord, status: str):
        event = self.events[transaction.event_id]
        sign = 1 if transaction.transaction_type == "contribution" else -1
        if status == "approved" and transaction.status != "approved":
            event.current_amount += sign * transaction.amount
        elif transaction.status == "approved" and status != "approved":
            event.current_amount -= sign * transaction.amount
        transaction.status = status
        if event.goal_amount and event.current_amount >= event.goal_amount:
            event.status = "fulfilled"

    def notify(self, user_id: int, title: str, message: str, type_name: str,
               data: Optional[Dict[str, str]] = None):
        record = NotificationRecord(
            id=self.next_id("notification"), user_id=user_id, title=title,
            message=message, type_name=type_name, data=dict(data or {}),
        )
        self.notifications[record.id] = record

    # =========================================================================
    # SERIALISATION
    # =========================================================================

    def user_json(self, user: UserRecord) -> dict:
        return {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "is_verified": user.verified,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "phone": user.phone,
            "location": self.location_json(self.locations[user.location_id])
            if user.location_id in self.locations else None,
        }

    def location_json(self, location: LocationRecord) -> dict:
        return {
            "id": location.id,
            "governorate": location.governorate,
            "district": location.district,
        }

    def announcement_json(self, record: AnnouncementRecord) -> dict:
        user = self.users[record.user_id]
        return {
            "id": record.id,
            "title": record.title,
            "content": record.content,
            "priority": record.priority,
            "image_urls": list(record.image_urls),
            "image_full_urls": [f"http://localhost:8000/storage/{p}" for p in record.image_urls],
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "user": {"id": user.id, "username": user.username},
        }

    def event_json(self, event: EventRecord) -> dict:
        return {
            "id": event.id,
            "title": event.title,
            "description": event.description,
            "type": event.type,
            "status": event.status,
            "goal_amount": event.goal_amount,
            "current_amount": event.current_amount,
            "possible_amount": event.possible_amount,
            "unit": event.unit,
            "image_urls": [],
            "user": {"id": event.user_id},
            "created_at": event.created_at,
        }

    def post_json(self, post: PostRecord, viewer: Optional[UserRecord]) -> dict:
        up, down = self.vote_counts(post.id)
        user_vote = self.votes.get((post.id, viewer.id)) if viewer else None
        return {
            "id": post.id,
            "content": post.content,
            "image_urls": [],
            "tags": list(post.tags),
            "created_at": post.created_at,
            "votes": {
                "upvotes": up,
                "downvotes": down,
                "total": up - down,
                "user_vote": user_vote,
            },
            "user": {"id": post.user_id},
            "event": {"id": post.event_id} if post.event_id else None,
            "comments_count": sum(1 for c in self.comments.values() if c.post_id == post.id),
        }

    def comment_json(self, comment: CommentRecord) -> dict:
        return {
            "id": comment.id,
            "post_id": comment.post_id,
            "content": comment.content,
            "user": {"id": comment.user_id},
            "created_at": comment.created_at,
        }

    def transaction_json(self, transaction: TransactionRecord) -> dict:
        return {
            "id": transaction.id,
            "transaction_type": transaction.transaction_type,
            "amount": transaction.amount,
            "status": transaction.status,
            "transaction_at": transaction.transaction_at,
            "user": {"id": transaction.user_id},
            "event": self.event_json(self.events[transaction.event_id]),
        }

    def notification_json(self, record: NotificationRecord) -> dict:
        return {
            "id": record.id,
            "title": record.title,
            "message": record.message,
            "is_read": record.read_at is not None,
            "read_at": record.read_at,
            "type": {"name": record.type_name},
            "data": dict(record.data),
            "created_at": record.created_at,
        }

    def verification_json(self, record: VerificationRecord) -> dict:
        return {
            "id": record.id,
            "user": {"id": record.user_id},
            "document_type": record.document_type,
            "status": record.status,
            "notes": record.notes,
            "image_urls": [],
        }
