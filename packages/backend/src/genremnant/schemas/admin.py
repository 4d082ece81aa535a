"""Pydantic schemas for the admin dashboard."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from genremnant.schemas.base import CamelModel


# ─── Users ───────────────────────────────────────────────

class UserIdBody(CamelModel):
    user_id: uuid.UUID


class ChangeRole(CamelModel):
    user_id: uuid.UUID
    new_role: str = Field(..., pattern=r"^(regular|contributor|admin)$")


class UpdateWhatsapp(CamelModel):
    user_id: uuid.UUID
    whatsapp: Optional[str] = Field(None, max_length=255)


class RejectContributor(CamelModel):
    user_id: uuid.UUID
    feedback: str = ""


class ContributorRequestRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    display_name: Optional[str] = None
    email: Optional[str] = None
    status: str
    requested_at: datetime
    reviewed_at: Optional[datetime] = None
    feedback: Optional[str] = None


# ─── Posts ───────────────────────────────────────────────

class PostIdBody(CamelModel):
    post_id: uuid.UUID


class RejectPost(CamelModel):
    post_id: uuid.UUID
    feedback: str = ""


class AdminPostEdit(CamelModel):
    post_id: uuid.UUID
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    content: Optional[str] = Field(None, min_length=1)
    summary: Optional[str] = None


# ─── Dashboard ───────────────────────────────────────────

class Statistics(CamelModel):
    total_users: int
    regular_users: int
    contributors: int
    admins: int
    suspended_users: int
    total_posts: int
    published_posts: int
    pending_posts: int
    total_comments: int
    total_reactions: int
    pending_contributor_requests: int


class AuditEventRead(CamelModel):
    id: int
    stream_id: str
    type: str
    data: dict[str, Any]
    meta: dict[str, Any]
    created_at: datetime
