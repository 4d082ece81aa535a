"""Posts API: public feed, search, and contributor submissions.

Learn: Route ordering matters: the fixed paths (/published, /search,
/my-posts) are declared before /{post_id} so they aren't parsed as ids.
Visibility rules live in PostService; routes only map exceptions:
PostNotFoundError → 404, PostPermissionError → 403, PostStateError → 400.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.dependencies import get_active_user, get_optional_account, require_roles
from genremnant.db.engine import get_db
from genremnant.db.models import User
from genremnant.schemas.base import MessageResponse
from genremnant.schemas.post import PostCreate, PostRead, PostUpdate
from genremnant.services.post_service import (
    PostNotFoundError,
    PostPermissionError,
    PostService,
    PostStateError,
)

router = APIRouter(prefix="/api/posts")


def _svc(db: AsyncSession = Depends(get_db)) -> PostService:
    return PostService(db)


def post_errors(e: Exception) -> HTTPException:
    """Translate a PostService exception into an HTTP error."""
    if isinstance(e, PostNotFoundError):
        return HTTPException(status_code=404, detail="Post not found")
    if isinstance(e, PostPermissionError):
        return HTTPException(status_code=403, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


_POST_ERRORS = (PostNotFoundError, PostPermissionError, PostStateError)


@router.get("/published", response_model=list[PostRead])
async def list_published(
    limit: Optional[int] = Query(None, ge=1, le=500),
    svc: PostService = Depends(_svc),
):
    """Published posts, newest first."""
    return await svc.list_published(limit=limit)


@router.get("/search", response_model=list[PostRead])
async def search_posts(
    q: str = Query(..., min_length=1, max_length=200),
    svc: PostService = Depends(_svc),
):
    return await svc.search_published(q)


@router.get("/my-posts", response_model=list[PostRead])
async def my_posts(
    user: User = Depends(get_active_user),
    svc: PostService = Depends(_svc),
):
    """The caller's own posts in every status."""
    return await svc.list_by_author(user.id)


@router.get("/{post_id}", response_model=PostRead)
async def get_post(
    post_id: uuid.UUID,
    viewer: Optional[User] = Depends(get_optional_account),
    svc: PostService = Depends(_svc),
):
    try:
        return await svc.get_visible(post_id, viewer)
    except PostNotFoundError as e:
        raise post_errors(e)


@router.post("", response_model=PostRead, status_code=201)
async def create_post(
    body: PostCreate,
    user: User = Depends(require_roles("contributor", "admin")),
    svc: PostService = Depends(_svc),
):
    """Submit a post for moderation. It starts out pending."""
    return await svc.create(
        author=user,
        type=body.type,
        title=body.title,
        content=body.content,
        summary=body.summary,
    )


@router.put("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: uuid.UUID,
    body: PostUpdate,
    user: User = Depends(get_active_user),
    svc: PostService = Depends(_svc),
):
    """Edit a pending post (author or admin)."""
    try:
        return await svc.update(user, post_id, **body.model_dump(exclude_none=True))
    except _POST_ERRORS as e:
        raise post_errors(e)


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: uuid.UUID,
    user: User = Depends(get_active_user),
    svc: PostService = Depends(_svc),
):
    """Delete a post together with its comments and reactions."""
    try:
        await svc.delete(user, post_id)
    except _POST_ERRORS as e:
        raise post_errors(e)
    return MessageResponse(message="Post deleted")
