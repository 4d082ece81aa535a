"""Admin API: user moderation, post moderation, interaction cleanup.

Learn: the whole router is gated by require_roles("admin") at include
time (see api/__init__.py). Handlers still take the admin as a
dependency because services record who acted (events.metadata.actor_id)
and refuse self-moderation.

Statistics go through the raw QueryExecutor rather than the ORM. The
executor runs on the request's session, so the dashboard counts the same
database every write here lands in, whatever GENREMNANT_QUERY_BACKEND says.
"""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.dependencies import require_roles
from genremnant.db.d1 import D1Error
from genremnant.db.engine import get_db
from genremnant.db.executor import QueryExecutor, get_query_executor
from genremnant.db.models import User
from genremnant.events.store import EventStore
from genremnant.realtime.hub import NotificationHub, get_notification_hub
from genremnant.schemas.admin import (
    AdminPostEdit,
    AuditEventRead,
    ChangeRole,
    ContributorRequestRead,
    PostIdBody,
    RejectContributor,
    RejectPost,
    Statistics,
    UpdateWhatsapp,
    UserIdBody,
)
from genremnant.schemas.base import MessageResponse
from genremnant.schemas.interaction import CommentRead, ReactionRead
from genremnant.schemas.post import PostRead
from genremnant.schemas.user import UserRead
from genremnant.services.interaction_service import (
    CommentNotFoundError,
    InteractionService,
    ReactionNotFoundError,
)
from genremnant.services.post_service import (
    PostNotFoundError,
    PostPermissionError,
    PostService,
    PostStateError,
)
from genremnant.services.user_service import (
    ContributorRequestError,
    SelfModerationError,
    UserNotFoundError,
    UserService,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/api/admin")

_admin = require_roles("admin")

STATISTICS_SQL = """
SELECT
  (SELECT COUNT(*) FROM users) AS total_users,
  (SELECT COUNT(*) FROM users WHERE role = ?) AS regular_users,
  (SELECT COUNT(*) FROM users WHERE role = ?) AS contributors,
  (SELECT COUNT(*) FROM users WHERE role = ?) AS admins,
  (SELECT COUNT(*) FROM users WHERE status = ?) AS suspended_users,
  (SELECT COUNT(*) FROM posts) AS total_posts,
  (SELECT COUNT(*) FROM posts WHERE status = ?) AS published_posts,
  (SELECT COUNT(*) FROM posts WHERE status = ?) AS pending_posts,
  (SELECT COUNT(*) FROM comments) AS total_comments,
  (SELECT COUNT(*) FROM reactions) AS total_reactions,
  (SELECT COUNT(*) FROM contributor_requests WHERE status = ?) AS pending_contributor_requests
"""
STATISTICS_PARAMS = ["regular", "contributor", "admin", "suspended", "published", "pending", "pending"]


def _users(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def _posts(db: AsyncSession = Depends(get_db)) -> PostService:
    return PostService(db)


def _interactions(db: AsyncSession = Depends(get_db)) -> InteractionService:
    return InteractionService(db)


def _user_errors(e: Exception) -> HTTPException:
    if isinstance(e, UserNotFoundError):
        return HTTPException(status_code=404, detail="User not found")
    return HTTPException(status_code=400, detail=str(e))


_USER_ERRORS = (UserNotFoundError, SelfModerationError, ContributorRequestError)


def _post_errors(e: Exception) -> HTTPException:
    if isinstance(e, PostNotFoundError):
        return HTTPException(status_code=404, detail="Post not found")
    return HTTPException(status_code=400, detail=str(e))


_POST_ERRORS = (PostNotFoundError, PostPermissionError, PostStateError)


# ═══════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════


@router.get("/users", response_model=list[UserRead])
async def list_users(svc: UserService = Depends(_users)):
    return await svc.list_users()


@router.post("/users/change-role", response_model=UserRead)
async def change_role(
    body: ChangeRole,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    try:
        return await svc.change_role(admin, body.user_id, body.new_role)
    except _USER_ERRORS as e:
        raise _user_errors(e)


@router.post("/users/suspend", response_model=UserRead)
async def suspend_user(
    body: UserIdBody,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    try:
        return await svc.set_status(admin, body.user_id, "suspended")
    except _USER_ERRORS as e:
        raise _user_errors(e)


@router.post("/users/activate", response_model=UserRead)
async def activate_user(
    body: UserIdBody,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    try:
        return await svc.set_status(admin, body.user_id, "active")
    except _USER_ERRORS as e:
        raise _user_errors(e)


@router.post("/users/update-whatsapp", response_model=UserRead)
async def update_whatsapp(
    body: UpdateWhatsapp,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    try:
        return await svc.admin_update_whatsapp(admin, body.user_id, body.whatsapp)
    except _USER_ERRORS as e:
        raise _user_errors(e)


@router.get("/users/contributor-requests", response_model=list[ContributorRequestRead])
async def contributor_requests(
    status: str = Query("pending", pattern=r"^(pending|approved|rejected|all)$"),
    svc: UserService = Depends(_users),
):
    requests = await svc.list_contributor_requests(None if status == "all" else status)
    return [
        ContributorRequestRead(
            id=r.id,
            user_id=r.user_id,
            display_name=r.user.display_name if r.user else None,
            email=r.user.email if r.user else None,
            status=r.status,
            requested_at=r.requested_at,
            reviewed_at=r.reviewed_at,
            feedback=r.feedback,
        )
        for r in requests
    ]


@router.post("/users/approve-contributor", response_model=UserRead)
async def approve_contributor(
    body: UserIdBody,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    try:
        return await svc.approve_contributor(admin, body.user_id)
    except _USER_ERRORS as e:
        raise _user_errors(e)


@router.post("/users/reject-contributor", response_model=UserRead)
async def reject_contributor(
    body: RejectContributor,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    try:
        return await svc.reject_contributor(admin, body.user_id, body.feedback)
    except _USER_ERRORS as e:
        raise _user_errors(e)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: uuid.UUID,
    admin: User = Depends(_admin),
    svc: UserService = Depends(_users),
):
    """Delete a user with their posts, comments, reactions and friendships."""
    try:
        await svc.delete_user(admin, user_id)
    except _USER_ERRORS as e:
        raise _user_errors(e)
    return MessageResponse(message="User deleted")


# ═══════════════════════════════════════════════════════════
# Posts
# ═══════════════════════════════════════════════════════════


@router.get("/posts/pending", response_model=list[PostRead])
async def pending_posts(svc: PostService = Depends(_posts)):
    return await svc.list_pending()


@router.post("/posts/approve", response_model=PostRead)
async def approve_post(
    body: PostIdBody,
    admin: User = Depends(_admin),
    svc: PostService = Depends(_posts),
):
    """Publish a post."""
    try:
        return await svc.approve(admin, body.post_id)
    except _POST_ERRORS as e:
        raise _post_errors(e)


@router.post("/posts/reject", response_model=PostRead)
async def reject_post(
    body: RejectPost,
    admin: User = Depends(_admin),
    svc: PostService = Depends(_posts),
):
    try:
        return await svc.reject(admin, body.post_id, body.feedback)
    except _POST_ERRORS as e:
        raise _post_errors(e)


@router.put("/posts/edit", response_model=PostRead)
async def edit_post(
    body: AdminPostEdit,
    admin: User = Depends(_admin),
    svc: PostService = Depends(_posts),
):
    fields = body.model_dump(exclude_none=True, exclude={"post_id"})
    try:
        return await svc.admin_edit(admin, body.post_id, **fields)
    except _POST_ERRORS as e:
        raise _post_errors(e)


@router.delete("/posts/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: uuid.UUID,
    admin: User = Depends(_admin),
    svc: PostService = Depends(_posts),
):
    try:
        await svc.delete(admin, post_id)
    except _POST_ERRORS as e:
        raise _post_errors(e)
    return MessageResponse(message="Post deleted")


# ═══════════════════════════════════════════════════════════
# Interactions
# ═══════════════════════════════════════════════════════════


@router.get("/comments", response_model=list[CommentRead])
async def all_comments(
    limit: int = Query(200, ge=1, le=1000),
    svc: InteractionService = Depends(_interactions),
):
    return await svc.list_all_comments(limit=limit)


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: uuid.UUID,
    admin: User = Depends(_admin),
    svc: InteractionService = Depends(_interactions),
    hub: NotificationHub = Depends(get_notification_hub),
):
    try:
        change = await svc.delete_comment(admin, comment_id)
    except CommentNotFoundError:
        raise HTTPException(status_code=404, detail="Comment not found")

    payload = change.payload
    await hub.notify_comment_update(
        payload["postId"], None, timestamp=payload["timestamp"], commentId=payload["commentId"]
    )
    return MessageResponse(message="Comment deleted")


@router.get("/reactions", response_model=list[ReactionRead])
async def all_reactions(
    limit: int = Query(200, ge=1, le=1000),
    svc: InteractionService = Depends(_interactions),
):
    return await svc.list_all_reactions(limit=limit)


@router.delete("/reactions/{reaction_id}", response_model=MessageResponse)
async def delete_reaction(
    reaction_id: uuid.UUID,
    admin: User = Depends(_admin),
    svc: InteractionService = Depends(_interactions),
    hub: NotificationHub = Depends(get_notification_hub),
):
    try:
        change = await svc.admin_delete_reaction(admin, reaction_id)
    except ReactionNotFoundError:
        raise HTTPException(status_code=404, detail="Reaction not found")

    payload = change.payload
    await hub.notify_reaction_update(
        payload["postId"], None, timestamp=payload["timestamp"], userId=payload["userId"]
    )
    return MessageResponse(message="Reaction deleted")


# ═══════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════


@router.get("/statistics", response_model=Statistics)
async def statistics(executor: QueryExecutor = Depends(get_query_executor)):
    """Dashboard counters from a single aggregate query."""
    try:
        rows = await executor.query(STATISTICS_SQL, STATISTICS_PARAMS)
    except (D1Error, SQLAlchemyError) as e:
        logger.error("admin.statistics_failed", error=str(e))
        raise HTTPException(status_code=502, detail="Query backend unavailable")
    row = rows[0] if rows else {}
    return Statistics(**{key: int(row.get(key) or 0) for key in Statistics.model_fields})


@router.get("/audit", response_model=list[AuditEventRead])
async def audit_log(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent audit events, newest first."""
    return await EventStore(db).recent(limit=limit)
