"""Initial schema: users, contributor requests, friendships, posts, comments, reactions, events

Learn: the schema mirrors db/models.py at the time of writing. CHECK
constraints pin the enum-like columns; every child table cascades on
delete of its post or user.

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ─── Users ───────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="regular"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("contributor_request_status", sa.String(20), nullable=True),
        sa.Column("rejection_feedback", sa.Text(), nullable=True),
        sa.Column("whatsapp", sa.String(255), nullable=True),
        sa.Column("instagram", sa.String(255), nullable=True),
        sa.Column("tiktok", sa.String(255), nullable=True),
        sa.Column("facebook", sa.String(255), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("role IN ('regular', 'contributor', 'admin')", name="ck_users_role"),
        sa.CheckConstraint("status IN ('active', 'suspended', 'inactive')", name="ck_users_status"),
        sa.CheckConstraint(
            "contributor_request_status IS NULL OR "
            "contributor_request_status IN ('pending', 'approved', 'rejected')",
            name="ck_users_contributor_request_status",
        ),
    )

    op.create_table(
        "contributor_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="ck_contributor_requests_status"
        ),
    )

    op.create_table(
        "friendships",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("requester_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("addressee_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pair_key", sa.String(80), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')", name="ck_friendships_status"
        ),
    )
    op.create_index("idx_friendships_addressee", "friendships", ["addressee_id", "status"])

    # ─── Content ─────────────────────────────────────────
    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("rejection_feedback", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("type IN ('sermon', 'daily_motivation')", name="ck_posts_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'published')", name="ck_posts_status"
        ),
    )
    op.create_index("idx_posts_status_published", "posts", ["status", "published_at"])
    op.create_index("idx_posts_author", "posts", ["author_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_comments_post", "comments", ["post_id", "created_at"])
    op.create_index("idx_comments_user", "comments", ["user_id"])

    op.create_table(
        "reactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reaction_type", sa.String(20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("post_id", "user_id", name="uq_reactions_post_user"),
        sa.CheckConstraint(
            "reaction_type IN ('like', 'love', 'haha', 'wow', 'sad', 'angry')",
            name="ck_reactions_type",
        ),
    )
    op.create_index("idx_reactions_user", "reactions", ["user_id"])

    # ─── Audit log ───────────────────────────────────────
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("stream_id", sa.String(200), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_events_stream", "events", ["stream_id", "id"])
    op.create_index("idx_events_type", "events", ["type"])
    op.create_index("idx_events_created", "events", ["created_at"])


def downgrade() -> None:
    op.drop_table("events")
    op.drop_table("reactions")
    op.drop_table("comments")
    op.drop_table("posts")
    op.drop_table("friendships")
    op.drop_table("contributor_requests")
    op.drop_table("users")
