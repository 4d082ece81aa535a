"""Users API: profile, discovery, friendships, contributor requests.

Learn: everything here acts on the caller (get_active_user). The only
other-user data exposed is the PublicUserRead shape: display name, role
and social handles, never email or moderation fields.
"""

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.dependencies import get_active_user
from genremnant.db.engine import get_db
from genremnant.db.models import User
from genremnant.schemas.base import MessageResponse
from genremnant.schemas.user import (
    FriendRequestAction,
    FriendRequestCreate,
    FriendsRead,
    ProfileUpdate,
    PublicUserRead,
    SocialHandleUpdate,
    UserRead,
)
from genremnant.services.friendship_service import (
    FriendRequestNotFoundError,
    FriendshipError,
    FriendshipExistsError,
    FriendshipService,
)
from genremnant.services.user_service import ContributorRequestError, UserService

router = APIRouter(prefix="/api/users")

SocialField = Literal["whatsapp", "instagram", "tiktok", "facebook"]


def _users(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def _friends(db: AsyncSession = Depends(get_db)) -> FriendshipService:
    return FriendshipService(db)


# ═══════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════


@router.get("/profile", response_model=UserRead)
async def get_profile(user: User = Depends(get_active_user)):
    return user


@router.put("/profile", response_model=UserRead)
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_active_user),
    svc: UserService = Depends(_users),
):
    """Partial update: only fields present in the body are changed."""
    return await svc.update_profile(user, **body.model_dump(exclude_none=True))


@router.put("/profile/{field}", response_model=UserRead)
async def update_social_handle(
    field: SocialField,
    body: SocialHandleUpdate,
    user: User = Depends(get_active_user),
    svc: UserService = Depends(_users),
):
    return await svc.set_social_handle(user, field, body.value)


@router.post("/contributor-request", response_model=MessageResponse, status_code=201)
async def request_contributor(
    user: User = Depends(get_active_user),
    svc: UserService = Depends(_users),
):
    try:
        await svc.request_contributor(user)
    except ContributorRequestError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return MessageResponse(message="Contributor request submitted")


# ═══════════════════════════════════════════════════════════
# Discovery and friendships
# ═══════════════════════════════════════════════════════════


@router.get("/discover", response_model=list[PublicUserRead])
async def discover(
    user: User = Depends(get_active_user),
    svc: UserService = Depends(_users),
):
    """Every other active user."""
    return await svc.discover(user.id)


@router.get("/friends", response_model=FriendsRead)
async def friends(
    user: User = Depends(get_active_user),
    svc: FriendshipService = Depends(_friends),
):
    return await svc.overview(user.id)


@router.post("/friend-request", response_model=MessageResponse, status_code=201)
async def send_friend_request(
    body: FriendRequestCreate,
    user: User = Depends(get_active_user),
    svc: FriendshipService = Depends(_friends),
):
    try:
        await svc.send_request(user, body.user_id)
    except FriendshipExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FriendshipError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FriendRequestNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return MessageResponse(message="Friend request sent successfully")


async def _respond(
    svc: FriendshipService, user: User, requester_id: uuid.UUID, accept: bool
) -> MessageResponse:
    try:
        await svc.respond(user, requester_id, accept=accept)
    except FriendRequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    verb = "accepted" if accept else "rejected"
    return MessageResponse(message=f"Friend request {verb} successfully")


@router.post("/friend-request/accept", response_model=MessageResponse)
async def accept_friend_request(
    body: FriendRequestAction,
    user: User = Depends(get_active_user),
    svc: FriendshipService = Depends(_friends),
):
    return await _respond(svc, user, body.request_id, accept=True)


@router.post("/friend-request/reject", response_model=MessageResponse)
async def reject_friend_request(
    body: FriendRequestAction,
    user: User = Depends(get_active_user),
    svc: FriendshipService = Depends(_friends),
):
    return await _respond(svc, user, body.request_id, accept=False)


@router.delete("/friends/{user_id}", response_model=MessageResponse)
async def remove_friend(
    user_id: uuid.UUID,
    user: User = Depends(get_active_user),
    svc: FriendshipService = Depends(_friends),
):
    try:
        await svc.remove(user, user_id)
    except FriendRequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return MessageResponse(message="Friend removed")
