"""Interaction service: comments, reactions and the updates feed.

Learn: Every comment/reaction write appends an audit event whose data is
the exact notification payload ({postId, reaction|comment, timestamp}).
The route handler pushes that same payload over the WebSocket after the
commit, and GET /api/updates replays it from the events table, so a
polling client and a connected client see identical frames.

Reactions: at most one per (post, user). Posting again with another type
replaces it; posting the same type again leaves the row unchanged.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.db.models import REACTION_TYPES, Comment, Post, Reaction, User
from genremnant.events.store import EventStore
from genremnant.events.types import (
    COMMENT_ADDED,
    COMMENT_DELETED,
    COMMENT_UPDATED,
    NOTIFICATION_TYPES,
    REACTION_REMOVED,
    REACTION_UPDATED,
)
from genremnant.realtime.hub import update_payload
from genremnant.schemas.interaction import CommentRead, ReactionRead

logger = structlog.get_logger()


class PostUnavailableError(Exception):
    """Post missing or not published: nothing to interact with."""


class CommentNotFoundError(Exception):
    pass


class CommentPermissionError(Exception):
    pass


class ReactionNotFoundError(Exception):
    pass


@dataclass
class ReactionChange:
    """Result of a reaction write, with the payload to push."""

    reaction: Optional[Reaction]
    created: bool
    payload: dict


@dataclass
class CommentChange:
    comment: Optional[Comment]
    payload: dict


def serialize_reaction(reaction: Reaction) -> dict:
    return ReactionRead.model_validate(reaction).model_dump(mode="json", by_alias=True)


def serialize_comment(comment: Comment) -> dict:
    return CommentRead.model_validate(comment).model_dump(mode="json", by_alias=True)


class InteractionService:
    """Business logic for comments and reactions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    async def _published_post(self, post_id: uuid.UUID) -> Post:
        post = await self.db.get(Post, post_id)
        if not post or post.status != "published":
            raise PostUnavailableError(f"Post {post_id} not found")
        return post

    # ═══════════════════════════════════════════════════════
    # Comments
    # ═══════════════════════════════════════════════════════

    async def list_comments(self, post_id: uuid.UUID) -> list[Comment]:
        """Comments on a post, oldest first."""
        result = await self.db.execute(
            select(Comment)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at, Comment.id)
        )
        return list(result.scalars().all())

    async def list_all_comments(self, limit: int = 200) -> list[Comment]:
        result = await self.db.execute(
            select(Comment).order_by(desc(Comment.created_at)).limit(limit)
        )
        return list(result.scalars().all())

    async def search_comments(self, term: str) -> list[Comment]:
        """Comments on published posts whose text contains `term`."""
        term = term.strip()
        if not term:
            return []
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        result = await self.db.execute(
            select(Comment)
            .join(Post, Post.id == Comment.post_id)
            .where(
                Post.status == "published",
                Comment.text.ilike(f"%{escaped}%", escape="\\"),
            )
            .order_by(desc(Comment.created_at))
        )
        return list(result.scalars().all())

    async def add_comment(self, user: User, post_id: uuid.UUID, text: str) -> CommentChange:
        await self._published_post(post_id)
        comment = Comment(post_id=post_id, user_id=user.id, text=text.strip())
        comment.user = user
        self.db.add(comment)
        await self.db.flush()

        payload = update_payload(post_id, "comment", serialize_comment(comment))
        await self.events.append(
            stream_id=f"post:{post_id}",
            event_type=COMMENT_ADDED,
            data=payload,
            metadata={"actor_id": str(user.id)},
        )
        await self.db.commit()
        logger.info("comment.added", comment_id=str(comment.id), post_id=str(post_id))
        return CommentChange(comment=comment, payload=payload)

    async def update_comment(self, user: User, comment_id: uuid.UUID, text: str) -> Comment:
        """Owner-only edit. Admins moderate by deleting, not rewriting."""
        comment = await self._comment(comment_id)
        if comment.user_id != user.id:
            raise CommentPermissionError("Not authorized to edit this comment")
        comment.text = text.strip()
        comment.updated_at = datetime.now(timezone.utc)
        await self.events.append(
            stream_id=f"post:{comment.post_id}",
            event_type=COMMENT_UPDATED,
            data={"commentId": str(comment.id)},
            metadata={"actor_id": str(user.id)},
        )
        await self.db.commit()
        return comment

    async def delete_comment(self, user: User, comment_id: uuid.UUID) -> CommentChange:
        """Owner or admin."""
        comment = await self._comment(comment_id)
        if comment.user_id != user.id and user.role != "admin":
            raise CommentPermissionError("Not authorized to delete this comment")
        post_id = comment.post_id
        await self.db.delete(comment)

        payload = update_payload(post_id, "comment", None, commentId=str(comment_id))
        await self.events.append(
            stream_id=f"post:{post_id}",
            event_type=COMMENT_DELETED,
            data=payload,
            metadata={"actor_id": str(user.id)},
        )
        await self.db.commit()
        logger.info("comment.deleted", comment_id=str(comment_id), post_id=str(post_id))
        return CommentChange(comment=None, payload=payload)

    async def _comment(self, comment_id: uuid.UUID) -> Comment:
        comment = await self.db.get(Comment, comment_id)
        if not comment:
            raise CommentNotFoundError(f"Comment {comment_id} not found")
        return comment

    # ═══════════════════════════════════════════════════════
    # Reactions
    # ═══════════════════════════════════════════════════════

    async def list_reactions(self, post_id: uuid.UUID) -> list[Reaction]:
        result = await self.db.execute(
            select(Reaction)
            .where(Reaction.post_id == post_id)
            .order_by(Reaction.created_at, Reaction.id)
        )
        return list(result.scalars().all())

    async def list_all_reactions(self, limit: int = 200) -> list[Reaction]:
        result = await self.db.execute(
            select(Reaction).order_by(desc(Reaction.created_at)).limit(limit)
        )
        return list(result.scalars().all())

    async def reaction_summary(self, post_id: uuid.UUID) -> dict[str, int]:
        """Counts per reaction type; every known type is present (0 if none)."""
        result = await self.db.execute(
            select(Reaction.reaction_type, func.count())
            .where(Reaction.post_id == post_id)
            .group_by(Reaction.reaction_type)
        )
        counts = {reaction_type: 0 for reaction_type in REACTION_TYPES}
        for reaction_type, count in result.all():
            counts[reaction_type] = count
        return counts

    async def get_user_reaction(
        self, user_id: uuid.UUID, post_id: uuid.UUID
    ) -> Optional[Reaction]:
        result = await self.db.execute(
            select(Reaction).where(
                Reaction.post_id == post_id, Reaction.user_id == user_id
            )
        )
        return result.scalars().first()

    async def upsert_reaction(
        self, user: User, post_id: uuid.UUID, reaction_type: str
    ) -> ReactionChange:
        """Create the caller's reaction or switch its type.

        Learn: the unique (post_id, user_id) constraint is the real guard.
        If two requests race past the SELECT, the loser's INSERT fails and
        we retry as an update of the winner's row.
        """
        if reaction_type not in REACTION_TYPES:
            raise ValueError(f"Invalid reaction type: {reaction_type}")
        await self._published_post(post_id)
        user_id = user.id

        reaction = await self.get_user_reaction(user_id, post_id)
        created = False
        if reaction is None:
            reaction = Reaction(post_id=post_id, user_id=user_id, reaction_type=reaction_type)
            self.db.add(reaction)
            try:
                await self.db.flush()
                created = True
            except IntegrityError:
                await self.db.rollback()
                reaction = await self.get_user_reaction(user_id, post_id)
                if reaction is None:
                    raise

        if not created and reaction.reaction_type != reaction_type:
            reaction.reaction_type = reaction_type
            reaction.updated_at = datetime.now(timezone.utc)
            await self.db.flush()

        payload = update_payload(post_id, "reaction", serialize_reaction(reaction))
        await self.events.append(
            stream_id=f"post:{post_id}",
            event_type=REACTION_UPDATED,
            data=payload,
            metadata={"actor_id": str(user_id), "created": created},
        )
        await self.db.commit()
        logger.info(
            "reaction.updated",
            post_id=str(post_id),
            reaction_type=reaction_type,
            created=created,
        )
        return ReactionChange(reaction=reaction, created=created, payload=payload)

    async def remove_reaction(self, user: User, post_id: uuid.UUID) -> ReactionChange:
        reaction = await self.get_user_reaction(user.id, post_id)
        if not reaction:
            raise ReactionNotFoundError("Reaction not found")
        return await self._delete_reaction(user, reaction)

    async def admin_delete_reaction(self, actor: User, reaction_id: uuid.UUID) -> ReactionChange:
        reaction = await self.db.get(Reaction, reaction_id)
        if not reaction:
            raise ReactionNotFoundError(f"Reaction {reaction_id} not found")
        return await self._delete_reaction(actor, reaction)

    async def _delete_reaction(self, actor: User, reaction: Reaction) -> ReactionChange:
        post_id = reaction.post_id
        await self.db.delete(reaction)
        payload = update_payload(
            post_id, "reaction", None, userId=str(reaction.user_id)
        )
        await self.events.append(
            stream_id=f"post:{post_id}",
            event_type=REACTION_REMOVED,
            data=payload,
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        return ReactionChange(reaction=None, created=False, payload=payload)

    # ═══════════════════════════════════════════════════════
    # Updates feed
    # ═══════════════════════════════════════════════════════

    async def updates_since(self, after_id: int = 0, limit: int = 100) -> list[dict]:
        """Notification events after the cursor, in wire form."""
        events = await self.events.read_all(
            after_id=after_id,
            event_types=list(NOTIFICATION_TYPES),
            limit=limit,
        )
        return [
            {"id": event.id, "type": NOTIFICATION_TYPES[event.type], "payload": event.data}
            for event in events
        ]

