"""Pydantic schemas for posts.

Learn: PostCreate is what a contributor submits; status is never client
controlled: every new post starts pending and only admin routes move it.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from genremnant.schemas.base import CamelModel

POST_TYPE_PATTERN = r"^(sermon|daily_motivation)$"


class PostCreate(CamelModel):
    type: str = Field(..., pattern=POST_TYPE_PATTERN)
    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    summary: Optional[str] = None


class PostUpdate(CamelModel):
    """Partial update: only non-None fields are applied."""
    type: Optional[str] = Field(None, pattern=POST_TYPE_PATTERN)
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    content: Optional[str] = Field(None, min_length=1)
    summary: Optional[str] = None


class PostRead(CamelModel):
    id: uuid.UUID
    author_id: uuid.UUID
    author_name: Optional[str] = None
    type: str
    title: str
    content: str
    summary: Optional[str] = None
    status: str
    rejection_feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None
