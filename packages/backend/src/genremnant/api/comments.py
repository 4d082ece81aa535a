"""Comments API.

Learn: writes go DB first, then push. The service commits the comment
together with its audit event and hands back the notification payload;
the route then asks the hub to fan it out. A push failure can never undo
or fail the write.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.dependencies import get_active_user
from genremnant.db.engine import get_db
from genremnant.db.models import User
from genremnant.realtime.hub import NotificationHub, get_notification_hub
from genremnant.schemas.base import MessageResponse
from genremnant.schemas.interaction import CommentCreate, CommentRead, CommentUpdate
from genremnant.services.interaction_service import (
    CommentNotFoundError,
    CommentPermissionError,
    InteractionService,
    PostUnavailableError,
)

router = APIRouter(prefix="/api/comments")


def _svc(db: AsyncSession = Depends(get_db)) -> InteractionService:
    return InteractionService(db)


@router.get("/search", response_model=list[CommentRead])
async def search_comments(
    q: str = Query(..., min_length=1, max_length=200),
    svc: InteractionService = Depends(_svc),
):
    return await svc.search_comments(q)


@router.get("/post/{post_id}", response_model=list[CommentRead])
async def list_comments(post_id: uuid.UUID, svc: InteractionService = Depends(_svc)):
    """Comments on a post, oldest first."""
    return await svc.list_comments(post_id)


@router.post("", response_model=CommentRead, status_code=201)
async def add_comment(
    body: CommentCreate,
    user: User = Depends(get_active_user),
    svc: InteractionService = Depends(_svc),
    hub: NotificationHub = Depends(get_notification_hub),
):
    try:
        change = await svc.add_comment(user, body.post_id, body.text)
    except PostUnavailableError:
        raise HTTPException(status_code=404, detail="Post not found")

    payload = change.payload
    await hub.notify_comment_update(
        body.post_id, payload["comment"], timestamp=payload["timestamp"]
    )
    return change.comment


@router.put("/{comment_id}", response_model=CommentRead)
async def update_comment(
    comment_id: uuid.UUID,
    body: CommentUpdate,
    user: User = Depends(get_active_user),
    svc: InteractionService = Depends(_svc),
):
    """Owner-only edit."""
    try:
        return await svc.update_comment(user, comment_id, body.text)
    except CommentNotFoundError:
        raise HTTPException(status_code=404, detail="Comment not found")
    except CommentPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.delete("/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: uuid.UUID,
    user: User = Depends(get_active_user),
    svc: InteractionService = Depends(_svc),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """Owner or admin."""
    try:
        change = await svc.delete_comment(user, comment_id)
    except CommentNotFoundError:
        raise HTTPException(status_code=404, detail="Comment not found")
    except CommentPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

    payload = change.payload
    await hub.notify_comment_update(
        payload["postId"],
        None,
        timestamp=payload["timestamp"],
        commentId=payload["commentId"],
    )
    return MessageResponse(message="Comment deleted")
