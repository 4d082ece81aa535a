"""SQLAlchemy ORM models: single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys, stored natively on PostgreSQL and as CHAR(32) on SQLite
- Portable JSON columns for the event log
- CHECK constraints mirror the allowed enum values
- ON DELETE CASCADE on every child table (comments, reactions, friendships)
- Only many-to-one relationships; child rows are deleted with bulk statements
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


USER_ROLES = ("regular", "contributor", "admin")
USER_STATUSES = ("active", "suspended", "inactive")
REQUEST_STATUSES = ("pending", "approved", "rejected")
POST_TYPES = ("sermon", "daily_motivation")
POST_STATUSES = ("pending", "approved", "rejected", "published")
REACTION_TYPES = ("like", "love", "haha", "wow", "sad", "angry")
FRIENDSHIP_STATUSES = ("pending", "accepted", "rejected")
SOCIAL_FIELDS = ("whatsapp", "instagram", "tiktok", "facebook")


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A community member.

    Learn: role decides what a user may do (regular users comment and
    react, contributors also author posts, admins moderate). status is
    independent of role: a suspended admin can't do anything either.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(_in("role", USER_ROLES), name="ck_users_role"),
        CheckConstraint(_in("status", USER_STATUSES), name="ck_users_status"),
        CheckConstraint(
            "contributor_request_status IS NULL OR "
            + _in("contributor_request_status", REQUEST_STATUSES),
            name="ck_users_contributor_request_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="regular")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    contributor_request_status: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True
    )
    rejection_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Social handles shown on the profile drawer
    whatsapp: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    instagram: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tiktok: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    facebook: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class ContributorRequest(Base):
    """Audit record of a request to become a contributor.

    One row per user; a new request after a rejection reopens the row.
    """

    __tablename__ = "contributor_requests"
    __table_args__ = (
        CheckConstraint(_in("status", REQUEST_STATUSES), name="ck_contributor_requests_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(foreign_keys=[user_id], lazy="selectin")


class Friendship(Base):
    """A friend request between two users.

    Learn: pair_key is "<smaller id>:<larger id>", so a UNIQUE constraint on
    it makes the pair unique regardless of who asked whom.
    """

    __tablename__ = "friendships"
    __table_args__ = (
        CheckConstraint(_in("status", FRIENDSHIP_STATUSES), name="ck_friendships_status"),
        Index("idx_friendships_addressee", "addressee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    addressee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    pair_key: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    @staticmethod
    def pair_key_for(a: uuid.UUID, b: uuid.UUID) -> str:
        low, high = sorted((str(a), str(b)))
        return f"{low}:{high}"


# ══════════════════════════════════════════════════════════════
# Content: posts, comments, reactions
# ══════════════════════════════════════════════════════════════


class Post(Base):
    """A sermon or daily motivation.

    Lifecycle: pending → published | rejected (admin only).
    Authors may edit only while pending.
    """

    __tablename__ = "posts"
    __table_args__ = (
        CheckConstraint(_in("type", POST_TYPES), name="ck_posts_type"),
        CheckConstraint(_in("status", POST_STATUSES), name="ck_posts_status"),
        Index("idx_posts_status_published", "status", "published_at"),
        Index("idx_posts_author", "author_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    rejection_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    author: Mapped["User"] = relationship(lazy="selectin")

    @property
    def author_name(self) -> Optional[str]:
        return self.author.display_name if self.author else None


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_post", "post_id", "created_at"),
        Index("idx_comments_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    user: Mapped["User"] = relationship(lazy="selectin")

    @property
    def user_name(self) -> Optional[str]:
        return self.user.display_name if self.user else None


class Reaction(Base):
    """One reaction per user per post; re-reacting replaces the type."""

    __tablename__ = "reactions"
    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_reactions_post_user"),
        CheckConstraint(_in("reaction_type", REACTION_TYPES), name="ck_reactions_type"),
        Index("idx_reactions_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


# ══════════════════════════════════════════════════════════════
# Audit log
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """Append-only audit log.

    Learn: every moderation and interaction write also appends an event.
    Admins read it as an audit trail; the /api/updates feed reads the
    reaction and comment events so polling clients can catch up.

    stream_id examples: "post:<uuid>", "user:<uuid>", "friendship:<uuid>"
    type examples: "post.approved", "reaction.updated", "comment.added"
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_stream", "stream_id", "id"),
        Index("idx_events_type", "type"),
        Index("idx_events_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )  # actor_id
    # Note: Python attr is "meta" because "metadata" is reserved by SQLAlchemy.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
