"""Pydantic schemas for comments, reactions and the updates feed."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from genremnant.schemas.base import CamelModel

REACTION_TYPE_PATTERN = r"^(like|love|haha|wow|sad|angry)$"


# ─── Comments ────────────────────────────────────────────

class CommentCreate(CamelModel):
    post_id: uuid.UUID
    text: str = Field(..., min_length=1, max_length=5000)


class CommentUpdate(CamelModel):
    text: str = Field(..., min_length=1, max_length=5000)


class CommentRead(CamelModel):
    id: uuid.UUID
    post_id: uuid.UUID
    user_id: uuid.UUID
    user_name: Optional[str] = None
    text: str
    created_at: datetime
    updated_at: datetime


# ─── Reactions ───────────────────────────────────────────

class ReactionUpsert(CamelModel):
    post_id: uuid.UUID
    reaction_type: str = Field(..., pattern=REACTION_TYPE_PATTERN)


class ReactionRead(CamelModel):
    id: uuid.UUID
    post_id: uuid.UUID
    user_id: uuid.UUID
    reaction_type: str
    created_at: datetime
    updated_at: datetime


class ReactionSummary(CamelModel):
    post_id: uuid.UUID
    counts: dict[str, int]
    total: int


class UserReactionRead(CamelModel):
    reaction: Optional[ReactionRead] = None


# ─── Updates feed ────────────────────────────────────────

class UpdateRead(CamelModel):
    """One notification in wire form, same envelope the websocket pushes."""
    id: int
    type: str
    payload: dict[str, Any]
