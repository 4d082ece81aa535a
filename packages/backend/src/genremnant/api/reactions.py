"""Reactions API.

Learn: POST is an upsert keyed on (post, caller). 201 means a new row was
created; 200 means the caller's existing reaction was switched (or was
already that type). Every write pushes a reaction_update.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.dependencies import get_active_user
from genremnant.db.engine import get_db
from genremnant.db.models import User
from genremnant.realtime.hub import NotificationHub, get_notification_hub
from genremnant.schemas.base import MessageResponse
from genremnant.schemas.interaction import (
    ReactionRead,
    ReactionSummary,
    ReactionUpsert,
    UserReactionRead,
)
from genremnant.services.interaction_service import (
    InteractionService,
    PostUnavailableError,
    ReactionNotFoundError,
)

router = APIRouter(prefix="/api/reactions")


def _svc(db: AsyncSession = Depends(get_db)) -> InteractionService:
    return InteractionService(db)


@router.get("/post/{post_id}", response_model=list[ReactionRead])
async def list_reactions(post_id: uuid.UUID, svc: InteractionService = Depends(_svc)):
    return await svc.list_reactions(post_id)


@router.get("/post/{post_id}/summary", response_model=ReactionSummary)
async def reaction_summary(post_id: uuid.UUID, svc: InteractionService = Depends(_svc)):
    """Counts per reaction type plus the total."""
    counts = await svc.reaction_summary(post_id)
    return ReactionSummary(post_id=post_id, counts=counts, total=sum(counts.values()))


@router.get("/user/{post_id}", response_model=UserReactionRead)
async def my_reaction(
    post_id: uuid.UUID,
    user: User = Depends(get_active_user),
    svc: InteractionService = Depends(_svc),
):
    """The caller's reaction on a post, or null."""
    reaction = await svc.get_user_reaction(user.id, post_id)
    return UserReactionRead(
        reaction=ReactionRead.model_validate(reaction) if reaction else None
    )


@router.post("", response_model=ReactionRead, status_code=201)
async def upsert_reaction(
    body: ReactionUpsert,
    response: Response,
    user: User = Depends(get_active_user),
    svc: InteractionService = Depends(_svc),
    hub: NotificationHub = Depends(get_notification_hub),
):
    try:
        change = await svc.upsert_reaction(user, body.post_id, body.reaction_type)
    except PostUnavailableError:
        raise HTTPException(status_code=404, detail="Post not found")

    if not change.created:
        response.status_code = 200
    payload = change.payload
    await hub.notify_reaction_update(
        body.post_id, payload["reaction"], timestamp=payload["timestamp"]
    )
    return change.reaction


@router.delete("/{post_id}", response_model=MessageResponse)
async def remove_reaction(
    post_id: uuid.UUID,
    user: User = Depends(get_active_user),
    svc: InteractionService = Depends(_svc),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """Remove the caller's reaction from a post."""
    try:
        change = await svc.remove_reaction(user, post_id)
    except ReactionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    payload = change.payload
    await hub.notify_reaction_update(
        post_id, None, timestamp=payload["timestamp"], userId=payload["userId"]
    )
    return MessageResponse(message="Reaction removed")
