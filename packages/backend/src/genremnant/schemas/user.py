"""Pydantic schemas for accounts, profiles and friendships.

Learn: Separate schemas for requests and reads keeps the API clean.
- RegisterRequest / LoginRequest / RefreshRequest: what the auth routes accept
- UserRead: the caller's own account (includes email and status)
- PublicUserRead: what other users see (no email, no moderation fields)
- FriendsRead: the three lists the friends page renders
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from genremnant.schemas.base import CamelModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ─── Auth ────────────────────────────────────────────────

class RegisterRequest(CamelModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    display_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    confirm_password: str = Field(..., min_length=1)
    request_to_contribute: bool = False


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class UserRead(CamelModel):
    id: uuid.UUID
    email: str
    display_name: str
    role: str
    status: str
    contributor_request_status: Optional[str] = None
    rejection_feedback: Optional[str] = None
    whatsapp: Optional[str] = None
    instagram: Optional[str] = None
    tiktok: Optional[str] = None
    facebook: Optional[str] = None
    created_at: datetime


class PublicUserRead(CamelModel):
    id: uuid.UUID
    display_name: str
    role: str
    whatsapp: Optional[str] = None
    instagram: Optional[str] = None
    tiktok: Optional[str] = None
    facebook: Optional[str] = None


class AuthResponse(CamelModel):
    message: str
    token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserRead


class MeResponse(CamelModel):
    user: UserRead


# ─── Profile ─────────────────────────────────────────────

class ProfileUpdate(CamelModel):
    """Partial update: only non-None fields are applied."""
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    whatsapp: Optional[str] = Field(None, max_length=255)
    instagram: Optional[str] = Field(None, max_length=255)
    tiktok: Optional[str] = Field(None, max_length=255)
    facebook: Optional[str] = Field(None, max_length=255)


class SocialHandleUpdate(CamelModel):
    """Set (or clear with null/empty) a single social handle."""
    value: Optional[str] = Field(None, max_length=255)


# ─── Friendships ─────────────────────────────────────────

class FriendRequestCreate(CamelModel):
    user_id: uuid.UUID


class FriendRequestAction(CamelModel):
    """requestId is the requester's user id."""
    request_id: uuid.UUID


class FriendsRead(CamelModel):
    friends: list[PublicUserRead]
    requests: list[PublicUserRead]
    sent_requests: list[PublicUserRead]
