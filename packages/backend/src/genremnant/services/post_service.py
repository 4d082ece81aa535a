"""Post service: submission, moderation and the public feed.

Learn: Posts follow a small state machine, enforced here rather than in
the routes so the admin API, the contributor API and the CLI agree:

    pending ──approve──→ published
       │                     │
       └──reject──→ rejected ┘ (admin may re-approve or re-reject)

Authors may edit only while a post is pending. Only `published` posts are
ever visible to the public; everything else is visible to its author and
to admins.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.db.models import Comment, Post, Reaction, User
from genremnant.events.store import EventStore
from genremnant.events.types import (
    POST_APPROVED,
    POST_CREATED,
    POST_DELETED,
    POST_REJECTED,
    POST_UPDATED,
)

logger = structlog.get_logger()

EDITABLE_FIELDS = ("type", "title", "content", "summary")


class PostNotFoundError(Exception):
    pass


class PostPermissionError(Exception):
    """Caller is neither the author nor an admin."""


class PostStateError(Exception):
    """Operation not allowed in the post's current status."""


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostService:
    """Business logic for posts."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    # ─── Reads ──────────────────────────────────────────

    async def get(self, post_id: uuid.UUID) -> Optional[Post]:
        return await self.db.get(Post, post_id)

    async def get_visible(self, post_id: uuid.UUID, viewer: Optional[User]) -> Post:
        """Published posts are public; others only for their author or an admin.

        Hidden posts raise PostNotFoundError, not a permission error, so the
        API doesn't reveal that an unpublished post exists.
        """
        post = await self.get(post_id)
        if not post:
            raise PostNotFoundError(f"Post {post_id} not found")
        if post.status == "published":
            return post
        if viewer and (viewer.id == post.author_id or viewer.role == "admin"):
            return post
        raise PostNotFoundError(f"Post {post_id} not found")

    async def get_published(self, post_id: uuid.UUID) -> Post:
        post = await self.get(post_id)
        if not post or post.status != "published":
            raise PostNotFoundError(f"Post {post_id} not found")
        return post

    async def list_published(self, limit: Optional[int] = None) -> list[Post]:
        """Public feed, newest first."""
        query = (
            select(Post)
            .where(Post.status == "published")
            .order_by(desc(Post.published_at), desc(Post.created_at))
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def search_published(self, term: str) -> list[Post]:
        """Case-insensitive title/content/summary match over published posts."""
        term = term.strip()
        if not term:
            return []
        pattern = f"%{_escape_like(term)}%"
        result = await self.db.execute(
            select(Post)
            .where(
                Post.status == "published",
                or_(
                    Post.title.ilike(pattern, escape="\\"),
                    Post.content.ilike(pattern, escape="\\"),
                    Post.summary.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(desc(Post.published_at))
        )
        return list(result.scalars().all())

    async def list_by_author(self, author_id: uuid.UUID) -> list[Post]:
        result = await self.db.execute(
            select(Post)
            .where(Post.author_id == author_id)
            .order_by(desc(Post.created_at))
        )
        return list(result.scalars().all())

    async def list_pending(self) -> list[Post]:
        """Moderation queue, oldest first."""
        result = await self.db.execute(
            select(Post).where(Post.status == "pending").order_by(Post.created_at)
        )
        return list(result.scalars().all())

    # ─── Author writes ──────────────────────────────────

    async def create(
        self,
        author: User,
        type: str,
        title: str,
        content: str,
        summary: Optional[str] = None,
    ) -> Post:
        """Create a post in 'pending' status."""
        post = Post(
            author_id=author.id,
            type=type,
            title=title.strip(),
            content=content,
            summary=summary,
            status="pending",
        )
        post.author = author
        self.db.add(post)
        await self.db.flush()

        await self.events.append(
            stream_id=f"post:{post.id}",
            event_type=POST_CREATED,
            data={"title": post.title, "type": type},
            metadata={"actor_id": str(author.id)},
        )
        await self.db.commit()
        logger.info("post.created", post_id=str(post.id), author_id=str(author.id))
        return post

    async def update(self, actor: User, post_id: uuid.UUID, **fields) -> Post:
        """Author (or admin) edit: pending posts only."""
        post = await self._owned(actor, post_id)
        if post.status != "pending":
            raise PostStateError("Only pending posts can be edited")
        return await self._apply_edit(actor, post, fields)

    async def delete(self, actor: User, post_id: uuid.UUID) -> None:
        """Delete a post with its comments and reactions in one transaction."""
        post = await self._owned(actor, post_id)
        await self.db.execute(delete(Reaction).where(Reaction.post_id == post_id))
        await self.db.execute(delete(Comment).where(Comment.post_id == post_id))
        await self.db.execute(delete(Post).where(Post.id == post_id))

        await self.events.append(
            stream_id=f"post:{post_id}",
            event_type=POST_DELETED,
            data={"title": post.title},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        logger.info("post.deleted", post_id=str(post_id))

    # ─── Admin moderation ───────────────────────────────

    async def approve(self, actor: User, post_id: uuid.UUID) -> Post:
        post = await self._require(post_id)
        if post.status == "published":
            raise PostStateError("Post is already published")
        now = datetime.now(timezone.utc)
        post.status = "published"
        post.published_at = now
        post.rejection_feedback = None
        post.updated_at = now

        await self.events.append(
            stream_id=f"post:{post.id}",
            event_type=POST_APPROVED,
            data={"title": post.title},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        logger.info("post.approved", post_id=str(post.id))
        return post

    async def reject(self, actor: User, post_id: uuid.UUID, feedback: str = "") -> Post:
        post = await self._require(post_id)
        post.status = "rejected"
        post.rejection_feedback = feedback or None
        post.published_at = None
        post.updated_at = datetime.now(timezone.utc)

        await self.events.append(
            stream_id=f"post:{post.id}",
            event_type=POST_REJECTED,
            data={"title": post.title, "feedback": feedback},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        logger.info("post.rejected", post_id=str(post.id))
        return post

    async def admin_edit(self, actor: User, post_id: uuid.UUID, **fields) -> Post:
        """Admin edit: allowed in any status."""
        post = await self._require(post_id)
        return await self._apply_edit(actor, post, fields)

    # ─── Helpers ────────────────────────────────────────

    async def _require(self, post_id: uuid.UUID) -> Post:
        post = await self.get(post_id)
        if not post:
            raise PostNotFoundError(f"Post {post_id} not found")
        return post

    async def _owned(self, actor: User, post_id: uuid.UUID) -> Post:
        post = await self._require(post_id)
        if post.author_id != actor.id and actor.role != "admin":
            raise PostPermissionError("Not authorized to modify this post")
        return post

    async def _apply_edit(self, actor: User, post: Post, fields: dict) -> Post:
        """Partial update: only non-None fields are applied."""
        changed = [
            name for name in EDITABLE_FIELDS if fields.get(name) is not None
        ]
        for name in changed:
            setattr(post, name, fields[name])
        if changed:
            post.updated_at = datetime.now(timezone.utc)
            await self.events.append(
                stream_id=f"post:{post.id}",
                event_type=POST_UPDATED,
                data={"fields": changed},
                metadata={"actor_id": str(actor.id)},
            )
            await self.db.commit()
        return post
