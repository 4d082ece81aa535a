"""Event store: append-only audit log.

Learn: every moderation and interaction write also INSERTs an event
{type: "post.approved", data: {"post_id": ..., "feedback": None}} in the
same transaction as the row change. The rows in posts/comments/reactions
stay the source of truth; the events table answers "who did what, when"
for admins and gives polling clients a monotonic cursor (events.id) to
catch up on reaction and comment notifications.
"""

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.db.models import Event


class EventStore:
    """Append-only event store backed by the relational database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        stream_id: str,
        event_type: str,
        data: dict,
        metadata: dict | None = None,
    ) -> Event:
        """Append an event to a stream. Returns the created event."""
        event = Event(
            stream_id=stream_id,
            type=event_type,
            data=data,
            meta=metadata or {},
        )
        self.db.add(event)
        await self.db.flush()  # get the auto-generated id
        return event

    async def read_stream(
        self,
        stream_id: str,
        after_id: int = 0,
        limit: int = 100,
    ) -> list[Event]:
        """Read events for a specific stream, optionally after a given position."""
        result = await self.db.execute(
            select(Event)
            .where(Event.stream_id == stream_id, Event.id > after_id)
            .order_by(Event.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def read_all(
        self,
        after_id: int = 0,
        event_types: list[str] | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Read events across all streams in id order (for the updates feed)."""
        query = select(Event).where(Event.id > after_id).order_by(Event.id).limit(limit)
        if event_types:
            query = query.where(Event.type.in_(event_types))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def recent(self, limit: int = 50) -> list[Event]:
        """Newest events first: the admin audit trail."""
        result = await self.db.execute(
            select(Event).order_by(desc(Event.id)).limit(limit)
        )
        return list(result.scalars().all())
