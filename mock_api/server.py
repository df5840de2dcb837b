"""
Donation Platform: Development Mock API
=======================================

In-memory stand-in for the donation platform backend, with the same
routes, envelopes and error shapes the client depends on.

Endpoints (all under /api):
- POST /auth/login, /auth/logout; GET /me
- /donation-events (+ /requests, /offers, /{id}/transactions)
- /donation-transactions/{id}/status
- /community-posts (+ /{id}/vote, /{id}/my-vote, /{id}/comments)
- /notifications (+ /unread-count, /{id}/read, /mark-all-read)
- /verifications/my-verifications, /verifications/{id}
- /announcements, /locations (public reads, admin writes)
- /user/profile; /users (admin) + /{id}/promote-to-moderator

Usage:
    uvicorn mock_api.server:app --reload
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .data import (
    AnnouncementRecord, CommentRecord, EventRecord, LocationRecord, MockDatabase,
    PostRecord, UserRecord, paginate, now
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class LoginRequest(BaseModel):
    email: str
    password: str


class VoteRequest(BaseModel):
    type: Literal["upvote", "downvote"]


class CommentRequest(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


class TransactionRequest(BaseModel):
    amount: float = Field(gt=0)


class TransactionStatusRequest(BaseModel):
    status: Literal["approved", "declined"]


class PostRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    event_id: int
    tags: List[str] = Field(default_factory=list, max_length=5)


class PostUpdateRequest(BaseModel):
    content: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    tags: Optional[List[str]] = None


class EventRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    type: Literal["request", "offer"]
    goal_amount: float = Field(gt=0)
    description: str = ""
    unit: Optional[str] = None


class AnnouncementRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    priority: Literal["low", "medium", "high"] = "medium"


class AnnouncementUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[Literal["low", "medium", "high"]] = None
    remove_image_urls: List[str] = Field(default_factory=list)


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    location_id: Optional[int] = None


class LocationRequest(BaseModel):
    governorate: str = Field(min_length=1, max_length=255)
    district: str = Field(min_length=1, max_length=255)


class ApiError(Exception):
    """Rendered as {"message": ...} with the given status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(db: Optional[MockDatabase] = None) -> FastAPI:
    """Build an app over `db` (a fresh seeded database by default)."""
    database = db or MockDatabase()

    app = FastAPI(
        title="Donation Platform Mock API",
        version="0.1.0",
        description="In-memory development double for the donation platform API",
    )
    app.state.db = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def injected_failures(request: Request, call_next):
        status = database.injected_failures.pop(
            (request.method, request.url.path), None
        )
        if status is not None:
            return JSONResponse({"message": f"Injected failure ({status})"}, status_code=status)
        return await call_next(request)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse({"message": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        errors = {}
        for item in exc.errors():
            loc = [str(p) for p in item.get("loc", ()) if p not in ("body", "query", "path")]
            errors.setdefault(".".join(loc) or "request", []).append(item.get("msg", "Invalid"))
        return JSONResponse(
            {"message": "The given data was invalid.", "errors": errors},
            status_code=422,
        )

    @app.get("/health")
    async def health_check():
        return {"status": "online", "mode": "mock"}

    app.include_router(_build_router(database), prefix="/api")
    return app


def _build_router(db: MockDatabase) -> APIRouter:
    router = APIRouter()

    # -------------------------------------------------------------------------
    # AUTH
    # -------------------------------------------------------------------------

    def viewer(authorization: Optional[str] = Header(default=None)) -> Optional[UserRecord]:
        if not authorization or not authorization.startswith("Bearer "):
            return None
        return db.user_for_token(authorization[len("Bearer "):])

    def require_user(user: Optional[UserRecord] = Depends(viewer)) -> UserRecord:
        if user is None:
            raise ApiError(401, "Unauthenticated.")
        return user

    @router.post("/auth/login")
    async def login(body: LoginRequest):
        for token, user_id in db.tokens.items():
            user = db.users[user_id]
            if user.email == body.email and user.password == body.password:
                return {"data": {"token": token, "user": db.user_json(user)}}
        raise ApiError(401, "Invalid credentials")

    @router.post("/auth/logout")
    async def logout(user: UserRecord = Depends(require_user)):
        return {"message": "Logged out successfully"}

    @router.get("/me")
    async def me(user: UserRecord = Depends(require_user)):
        return {"data": db.user_json(user)}

    # -------------------------------------------------------------------------
    # DONATION EVENTS
    # -------------------------------------------------------------------------

    def find_event(event_id: int) -> EventRecord:
        event = db.events.get(event_id)
        if event is None:
            raise ApiError(404, "Donation event not found.")
        return event

    def list_events(kind: Optional[str], search: Optional[str], page: int, per_page: int,
                    user_id: Optional[int] = None) -> dict:
        events = [
            e for e in db.events.values()
            if (kind is None or e.type == kind)
            and (search is None or search.lower() in e.title.lower())
            and (user_id is None or e.user_id == user_id)
        ]
        return paginate([db.event_json(e) for e in events], page, per_page)

    @router.get("/donation-events")
    async def donation_events(page: int = Query(1, ge=1), per_page: int = Query(10, ge=1, le=100),
                              type: Optional[str] = None, search: Optional[str] = None):
        return list_events(type, search, page, per_page)

    @router.get("/donation-events/requests")
    async def donation_requests(page: int = Query(1, ge=1), per_page: int = Query(10, ge=1, le=100),
                                search: Optional[str] = None):
        return list_events("request", search, page, per_page)

    @router.get("/donation-events/offers")
    async def donation_offers(page: int = Query(1, ge=1), per_page: int = Query(10, ge=1, le=100),
                              search: Optional[str] = None):
        return list_events("offer", search, page, per_page)

    @router.get("/donation-events/user/{user_id}")
    async def donation_events_by_user(user_id: int, page: int = Query(1, ge=1),
                                      per_page: int = Query(10, ge=1, le=100)):
        return list_events(None, None, page, per_page, user_id=user_id)

    @router.get("/donation-events/{event_id}")
    async def donation_event(event_id: int):
        return {"data": db.event_json(find_event(event_id))}

    @router.post("/donation-events", status_code=201)
    async def create_donation_event(body: EventRequest, user: UserRecord = Depends(require_user)):
        event = EventRecord(
            id=db.next_id("event"), title=body.title, type=body.type,
            status="active", goal_amount=body.goal_amount, current_amount=0.0,
            user_id=user.id, description=body.description, unit=body.unit,
            possible_amount=body.goal_amount,
        )
        db.events[event.id] = event
        return {"data": db.event_json(event)}

    @router.delete("/donation-events/{event_id}")
    async def delete_donation_event(event_id: int, user: UserRecord = Depends(require_user)):
        event = find_event(event_id)
        if event.user_id != user.id and not user.is_admin:
            raise ApiError(403, "You can only delete your own donation events.")
        del db.events[event_id]
        return {"success": True}

    @router.post("/donation-events/{event_id}/transactions", status_code=201)
    async def create_transaction(event_id: int, body: TransactionRequest,
                                 user: UserRecord = Depends(require_user)):
        event = find_event(event_id)
        if not user.verified:
            raise ApiError(403, "Only verified users can donate.")
        if event.status != "active":
            raise ApiError(422, "This donation event is not active.")
        transaction = db.record_transaction(event, user, body.amount)
        return {
            "data": db.transaction_json(transaction),
            "message": "Donation transaction created successfully.",
        }

    @router.post("/donation-events/{event_id}/{action}")
    async def donation_event_action(event_id: int, action: Literal["activate", "cancel", "suspend"],
                                    user: UserRecord = Depends(require_user)):
        event = find_event(event_id)
        if action == "suspend" and not user.is_admin:
            raise ApiError(403, "Only administrators can suspend events.")
        if action != "suspend" and event.user_id != user.id:
            raise ApiError(403, "You can only manage your own donation events.")
        event.status = {"activate": "active", "cancel": "cancelled", "suspend": "suspended"}[action]
        return {"data": db.event_json(event)}

    @router.get("/donation-events/{event_id}/transactions")
    async def event_transactions(event_id: int, page: int = Query(1, ge=1),
                                 per_page: int = Query(10, ge=1, le=100),
                                 status: Optional[str] = None, type: Optional[str] = None,
                                 user: UserRecord = Depends(require_user)):
        find_event(event_id)
        items = [
            db.transaction_json(t) for t in db.transactions.values()
            if t.event_id == event_id
            and (status is None or t.status == status)
            and (type is None or t.transaction_type == type)
        ]
        return paginate(items, page, per_page)

    @router.put("/donation-transactions/{transaction_id}/status")
    async def transaction_status(transaction_id: int, body: TransactionStatusRequest,
                                 user: UserRecord = Depends(require_user)):
        transaction = db.transactions.get(transaction_id)
        if transaction is None:
            raise ApiError(404, "Transaction not found.")
        if db.events[transaction.event_id].user_id != user.id:
            raise ApiError(403, "Only the event owner can review transactions.")
        db.apply_status(transaction, body.status)
        return {"data": db.transaction_json(transaction)}

    # -------------------------------------------------------------------------
    # COMMUNITY POSTS
    # -------------------------------------------------------------------------

    def find_post(post_id: int) -> PostRecord:
        post = db.posts.get(post_id)
        if post is None:
            raise ApiError(404, "Community post not found.")
        return post

    def vote_payload(post_id: int) -> dict:
        up, down = db.vote_counts(post_id)
        return {"data": {"upvotes": up, "downvotes": down, "total_votes": up + down}}

    @router.get("/community-posts")
    async def community_posts(page: int = Query(1, ge=1), per_page: int = Query(10, ge=1, le=100),
                              search: Optional[str] = None,
                              user: Optional[UserRecord] = Depends(viewer)):
        posts = [
            db.post_json(p, user) for p in db.posts.values()
            if search is None or search.lower() in p.content.lower()
        ]
        return paginate(posts, page, per_page)

    @router.get("/community-posts/{post_id}")
    async def community_post(post_id: int, user: Optional[UserRecord] = Depends(viewer)):
        return {"data": db.post_json(find_post(post_id), user)}

    @router.post("/community-posts", status_code=201)
    async def create_post(body: PostRequest, user: UserRecord = Depends(require_user)):
        find_event(body.event_id)
        post = PostRecord(
            id=db.next_id("post"), content=body.content, user_id=user.id,
            event_id=body.event_id, tags=list(body.tags),
        )
        db.posts = {post.id: post, **db.posts}
        return {"data": db.post_json(post, user)}

    @router.put("/community-posts/{post_id}")
    async def update_post(post_id: int, body: PostUpdateRequest,
                          user: UserRecord = Depends(require_user)):
        post = find_post(post_id)
        if post.user_id != user.id:
            raise ApiError(403, "You can only edit your own posts.")
        if body.content is not None:
            post.content = body.content
        if body.tags is not None:
            post.tags = list(body.tags)
        return {"data": db.post_json(post, user)}

    @router.delete("/community-posts/{post_id}")
    async def delete_post(post_id: int, user: UserRecord = Depends(require_user)):
        post = find_post(post_id)
        if post.user_id != user.id and not user.is_admin:
            raise ApiError(403, "You can only delete your own posts.")
        del db.posts[post_id]
        return {"success": True}

    @router.post("/community-posts/{post_id}/vote")
    async def vote(post_id: int, body: VoteRequest, user: UserRecord = Depends(require_user)):
        find_post(post_id)
        db.cast_vote(post_id, user.id, body.type)
        return vote_payload(post_id)

    @router.delete("/community-posts/{post_id}/vote")
    async def unvote(post_id: int, user: UserRecord = Depends(require_user)):
        find_post(post_id)
        db.votes.pop((post_id, user.id), None)
        return vote_payload(post_id)

    @router.get("/community-posts/{post_id}/my-vote")
    async def my_vote(post_id: int, user: UserRecord = Depends(require_user)):
        find_post(post_id)
        vote_type = db.votes.get((post_id, user.id))
        return {"data": {"type": vote_type} if vote_type else None}

    @router.get("/community-posts/{post_id}/comments")
    async def comments(post_id: int):
        find_post(post_id)
        return {"data": [
            db.comment_json(c) for c in db.comments.values() if c.post_id == post_id
        ]}

    @router.post("/community-posts/{post_id}/comments", status_code=201)
    async def add_comment(post_id: int, body: CommentRequest,
                          user: UserRecord = Depends(require_user)):
        find_post(post_id)
        comment = CommentRecord(
            id=db.next_id("comment"), post_id=post_id, user_id=user.id, content=body.content
        )
        db.comments[comment.id] = comment
        return {"data": db.comment_json(comment)}

    @router.delete("/community-posts/{post_id}/comments/{comment_id}")
    async def delete_comment(post_id: int, comment_id: int,
                             user: UserRecord = Depends(require_user)):
        comment = db.comments.get(comment_id)
        if comment is None or comment.post_id != post_id:
            raise ApiError(404, "Comment not found.")
        if comment.user_id != user.id and not user.is_admin:
            raise ApiError(403, "You can only delete your own comments.")
        del db.comments[comment_id]
        return {"success": True}

    # -------------------------------------------------------------------------
    # NOTIFICATIONS
    # -------------------------------------------------------------------------

    def own_notifications(user: UserRecord):
        return [n for n in db.notifications.values() if n.user_id == user.id]

    @router.get("/notifications")
    async def notifications(page: int = Query(1, ge=1), per_page: int = Query(10, ge=1, le=100),
                            type: Optional[str] = None, unread_only: bool = False,
                            user: UserRecord = Depends(require_user)):
        items = [
            db.notification_json(n) for n in reversed(own_notifications(user))
            if (type is None or n.type_name == type)
            and (not unread_only or n.read_at is None)
        ]
        return paginate(items, page, per_page)

    @router.get("/notifications/unread-count")
    async def unread_count(user: UserRecord = Depends(require_user)):
        return {"unread_count": sum(1 for n in own_notifications(user) if n.read_at is None)}

    @router.put("/notifications/mark-all-read")
    async def mark_all_read(user: UserRecord = Depends(require_user)):
        for record in own_notifications(user):
            record.read_at = record.read_at or now()
        return {"message": "All notifications marked as read"}

    @router.put("/notifications/{notification_id}/read")
    async def mark_read(notification_id: int, user: UserRecord = Depends(require_user)):
        record = db.notifications.get(notification_id)
        if record is None or record.user_id != user.id:
            raise ApiError(404, "Notification not found.")
        record.read_at = record.read_at or now()
        return {"data": db.notification_json(record)}

    @router.delete("/notifications/read")
    async def delete_read(user: UserRecord = Depends(require_user)):
        for record in own_notifications(user):
            if record.read_at is not None:
                del db.notifications[record.id]
        return Response(status_code=204)

    @router.delete("/notifications/unread")
    async def delete_unread(user: UserRecord = Depends(require_user)):
        for record in own_notifications(user):
            if record.read_at is None:
                del db.notifications[record.id]
        return Response(status_code=204)

    @router.delete("/notifications")
    async def delete_all(user: UserRecord = Depends(require_user)):
        for record in own_notifications(user):
            del db.notifications[record.id]
        return Response(status_code=204)

    # -------------------------------------------------------------------------
    # VERIFICATIONS
    # -------------------------------------------------------------------------

    @router.get("/verifications/my-verifications")
    async def my_verifications(user: UserRecord = Depends(require_user)):
        return {"data": [
            db.verification_json(v) for v in db.verifications.values() if v.user_id == user.id
        ]}

    @router.get("/verifications/{verification_id}")
    async def verification(verification_id: int, user: UserRecord = Depends(require_user)):
        record = db.verifications.get(verification_id)
        if record is None or (record.user_id != user.id and not user.is_admin):
            raise ApiError(404, "Verification not found.")
        return {"data": db.verification_json(record)}

    # -------------------------------------------------------------------------
    # ANNOUNCEMENTS
    # -------------------------------------------------------------------------

    def require_admin(user: UserRecord = Depends(require_user)) -> UserRecord:
        if not user.is_admin:
            raise ApiError(403, "This action is unauthorized.")
        return user

    def find_announcement(announcement_id: int) -> AnnouncementRecord:
        record = db.announcements.get(announcement_id)
        if record is None:
            raise ApiError(404, "Announcement not found.")
        return record

    @router.get("/announcements")
    async def announcements(page: int = Query(1, ge=1), per_page: int = Query(15, ge=1, le=100)):
        items = [db.announcement_json(a) for a in reversed(list(db.announcements.values()))]
        return paginate(items, page, per_page)

    @router.get("/announcements/{announcement_id}")
    async def announcement(announcement_id: int):
        return {"data": db.announcement_json(find_announcement(announcement_id))}

    @router.post("/announcements", status_code=201)
    async def create_announcement(body: AnnouncementRequest,
                                  user: UserRecord = Depends(require_admin)):
        record = AnnouncementRecord(
            id=db.next_id("announcement"), user_id=user.id, title=body.title,
            content=body.content, priority=body.priority,
        )
        db.announcements[record.id] = record
        for other in db.users.values():
            if other.id != user.id:
                db.notify(other.id, "New announcement", record.title, "new_announcement",
                          {"announcement_id": str(record.id)})
        return {"data": db.announcement_json(record),
                "message": "Announcement created successfully"}

    @router.put("/announcements/{announcement_id}")
    async def update_announcement(announcement_id: int, body: AnnouncementUpdateRequest,
                                  user: UserRecord = Depends(require_admin)):
        record = find_announcement(announcement_id)
        record.title = body.title or record.title
        record.content = body.content or record.content
        record.priority = body.priority or record.priority
        record.image_urls = [p for p in record.image_urls if p not in body.remove_image_urls]
        record.updated_at = now()
        return {"success": True, "data": db.announcement_json(record),
                "message": "Announcement updated successfully"}

    @router.delete("/announcements/{announcement_id}")
    async def delete_announcement(announcement_id: int,
                                  user: UserRecord = Depends(require_admin)):
        del db.announcements[find_announcement(announcement_id).id]
        return {"success": True, "message": "Announcement deleted successfully"}

    # -------------------------------------------------------------------------
    # USERS
    # -------------------------------------------------------------------------

    def invalid_location(location_id: Optional[int]) -> Optional[JSONResponse]:
        if location_id is None or location_id in db.locations:
            return None
        return JSONResponse({
            "message": "The given data was invalid.",
            "errors": {"location_id": ["The selected location id is invalid."]},
        }, status_code=422)

    @router.get("/user/profile")
    async def profile(user: UserRecord = Depends(require_user)):
        return {"data": db.user_json(user), "message": "User profile retrieved successfully"}

    @router.put("/user/profile")
    async def update_profile(body: ProfileUpdateRequest, user: UserRecord = Depends(require_user)):
        refused = invalid_location(body.location_id)
        if refused is not None:
            return refused
        for name, value in body.model_dump(exclude_none=True).items():
            setattr(user, name, value)
        return {"data": db.user_json(user), "message": "User profile updated successfully"}

    @router.get("/users")
    async def users(page: int = Query(1, ge=1), per_page: int = Query(15, ge=1, le=100),
                    search: Optional[str] = None, admin: UserRecord = Depends(require_admin)):
        matches = [
            db.user_json(u) for u in db.users.values()
            if search is None or search.lower() in (u.username + u.email).lower()
        ]
        return paginate(matches, page, per_page)

    @router.get("/users/{user_id}")
    async def user_detail(user_id: int, admin: UserRecord = Depends(require_admin)):
        user = db.users.get(user_id)
        if user is None:
            raise ApiError(404, "User not found.")
        return {"success": True, "data": db.user_json(user)}

    @router.post("/users/{user_id}/promote-to-moderator")
    async def promote(user_id: int, admin: UserRecord = Depends(require_admin)):
        user = db.users.get(user_id)
        if user is None:
            raise ApiError(404, "User not found.")
        user.is_moderator = True
        return {"success": True, "data": db.user_json(user),
                "message": "User promoted to moderator successfully"}

    # -------------------------------------------------------------------------
    # LOCATIONS
    # -------------------------------------------------------------------------

    def find_location(location_id: int) -> LocationRecord:
        location = db.locations.get(location_id)
        if location is None:
            raise ApiError(404, "Location not found.")
        return location

    @router.get("/locations")
    async def locations():
        return {"data": [db.location_json(location) for location in db.locations.values()],
                "message": "Locations retrieved successfully"}

    @router.get("/locations/{location_id}")
    async def location(location_id: int):
        return {"data": db.location_json(find_location(location_id))}

    @router.post("/locations", status_code=201)
    async def create_location(body: LocationRequest, admin: UserRecord = Depends(require_admin)):
        record = LocationRecord(id=db.next_id("location"), governorate=body.governorate,
                                district=body.district)
        db.locations[record.id] = record
        return {"data": db.location_json(record)}

    @router.put("/locations/{location_id}")
    async def update_location(location_id: int, body: LocationRequest,
                              admin: UserRecord = Depends(require_admin)):
        record = find_location(location_id)
        record.governorate, record.district = body.governorate, body.district
        return {"data": db.location_json(record)}

    @router.delete("/locations/{location_id}")
    async def delete_location(location_id: int, admin: UserRecord = Depends(require_admin)):
        del db.locations[find_location(location_id).id]
        return {"message": "Location deleted successfully"}

    return router


app = create_app()
