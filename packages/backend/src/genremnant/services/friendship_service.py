"""Friendship service: friend requests between users.

Learn: one row per unordered pair (pair_key = "<low id>:<high id>").
A request from A to B and one from B to A would collide on pair_key,
which is what we want: the second is either an error or, if the first
was rejected, a fresh request that reuses the row.

    pending ──accept──→ accepted
       └────reject──→ rejected ──(re-request)──→ pending
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.db.models import Friendship, User
from genremnant.events.store import EventStore
from genremnant.events.types import (
    FRIENDSHIP_ACCEPTED,
    FRIENDSHIP_REJECTED,
    FRIENDSHIP_REMOVED,
    FRIENDSHIP_REQUESTED,
)


class FriendshipError(Exception):
    """Invalid friend request (self, or pair already connected)."""


class FriendshipExistsError(FriendshipError):
    pass


class FriendRequestNotFoundError(Exception):
    pass


class FriendshipService:
    """Business logic for friend requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    async def _pair(self, a: uuid.UUID, b: uuid.UUID) -> Optional[Friendship]:
        result = await self.db.execute(
            select(Friendship).where(Friendship.pair_key == Friendship.pair_key_for(a, b))
        )
        return result.scalars().first()

    async def send_request(self, requester: User, addressee_id: uuid.UUID) -> Friendship:
        if addressee_id == requester.id:
            raise FriendshipError("Cannot send friend request to yourself")
        addressee = await self.db.get(User, addressee_id)
        if not addressee:
            raise FriendRequestNotFoundError(f"User {addressee_id} not found")

        now = datetime.now(timezone.utc)
        friendship = await self._pair(requester.id, addressee_id)
        if friendship and friendship.status != "rejected":
            raise FriendshipExistsError("Friendship already exists")

        if friendship is None:
            friendship = Friendship(
                requester_id=requester.id,
                addressee_id=addressee_id,
                pair_key=Friendship.pair_key_for(requester.id, addressee_id),
                status="pending",
            )
            self.db.add(friendship)
        else:
            friendship.requester_id = requester.id
            friendship.addressee_id = addressee_id
            friendship.status = "pending"
            friendship.updated_at = now
        try:
            await self.db.flush()
        except IntegrityError:
            # the other side's request for the same pair committed first
            await self.db.rollback()
            raise FriendshipExistsError("Friendship already exists")

        await self.events.append(
            stream_id=f"friendship:{friendship.id}",
            event_type=FRIENDSHIP_REQUESTED,
            data={"requester_id": str(requester.id), "addressee_id": str(addressee_id)},
        )
        await self.db.commit()
        return friendship

    async def respond(
        self, addressee: User, requester_id: uuid.UUID, accept: bool
    ) -> Friendship:
        """Accept or reject a pending request sent TO `addressee` BY `requester_id`."""
        result = await self.db.execute(
            select(Friendship).where(
                Friendship.requester_id == requester_id,
                Friendship.addressee_id == addressee.id,
                Friendship.status == "pending",
            )
        )
        friendship = result.scalars().first()
        if not friendship:
            raise FriendRequestNotFoundError("Friend request not found")

        friendship.status = "accepted" if accept else "rejected"
        friendship.updated_at = datetime.now(timezone.utc)
        await self.events.append(
            stream_id=f"friendship:{friendship.id}",
            event_type=FRIENDSHIP_ACCEPTED if accept else FRIENDSHIP_REJECTED,
            data={"requester_id": str(requester_id), "addressee_id": str(addressee.id)},
        )
        await self.db.commit()
        return friendship

    async def remove(self, user: User, other_id: uuid.UUID) -> None:
        """Unfriend, or withdraw a request in either direction."""
        friendship = await self._pair(user.id, other_id)
        if not friendship:
            raise FriendRequestNotFoundError("Friendship not found")
        friendship_id = friendship.id
        await self.db.execute(delete(Friendship).where(Friendship.id == friendship_id))
        await self.events.append(
            stream_id=f"friendship:{friendship_id}",
            event_type=FRIENDSHIP_REMOVED,
            data={"user_id": str(user.id), "other_id": str(other_id)},
        )
        await self.db.commit()

    async def overview(self, user_id: uuid.UUID) -> dict[str, list[User]]:
        """{friends, requests (incoming), sent_requests} for the friends page."""
        friends = await self.db.execute(
            select(User)
            .join(
                Friendship,
                or_(
                    and_(Friendship.requester_id == user_id, Friendship.addressee_id == User.id),
                    and_(Friendship.addressee_id == user_id, Friendship.requester_id == User.id),
                ),
            )
            .where(Friendship.status == "accepted")
            .order_by(User.display_name)
        )
        incoming = await self.db.execute(
            select(User)
            .join(Friendship, Friendship.requester_id == User.id)
            .where(Friendship.addressee_id == user_id, Friendship.status == "pending")
            .order_by(Friendship.created_at)
        )
        sent = await self.db.execute(
            select(User)
            .join(Friendship, Friendship.addressee_id == User.id)
            .where(Friendship.requester_id == user_id, Friendship.status == "pending")
            .order_by(Friendship.created_at)
        )
        return {
            "friends": list(friends.scalars().all()),
            "requests": list(incoming.scalars().all()),
            "sent_requests": list(sent.scalars().all()),
        }
