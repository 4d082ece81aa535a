"""Notification hub: the set of open WebSocket connections.

Learn: One hub per process, created with the app (app.state.notifications).
Each connection may be tagged with one post id via a `subscribe` frame.
broadcast_to_post() writes to connections tagged with that post AND to
untagged connections (the feed page wants everything).

Envelope both ways: {"type": ..., "payload": {...}}
  inbound:  ping, subscribe
  outbound: connected, pong, reaction_update, comment_update

Nothing here raises into the caller: a failed write is logged and the
connection is dropped from the set.
"""

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from fastapi import Request
from starlette.websockets import WebSocketState

from genremnant.events.types import WIRE_COMMENT_UPDATE, WIRE_REACTION_UPDATE

logger = structlog.get_logger()

WELCOME_MESSAGE = "Connected to GenRemnant"


def now_ms() -> int:
    """Milliseconds since the epoch: the timestamp format clients expect."""
    return int(time.time() * 1000)


def post_tag(post_id: Any) -> Optional[str]:
    """Canonical subscription tag: None for "all posts", else a uuid string.

    Empty values mean no subscription. Uppercase or braced uuids compare
    equal to the str(uuid.UUID) form posts are announced with.
    """
    if post_id is None or post_id == "":
        return None
    try:
        return str(uuid.UUID(str(post_id)))
    except ValueError:
        return str(post_id)


def update_payload(
    post_id: uuid.UUID | str,
    key: str,
    value: Any,
    timestamp: Optional[int] = None,
    **extra: Any,
) -> dict:
    """Build a reaction/comment notification payload.

    Shared by the push path and the audit events, so polling clients get
    exactly what a connected client would have received.
    """
    payload = {"postId": str(post_id), key: value}
    payload.update(extra)
    payload["timestamp"] = timestamp if timestamp is not None else now_ms()
    return payload


@dataclass(eq=False)
class Subscriber:
    """An open connection plus its optional post subscription."""

    websocket: Any
    post_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )


class NotificationHub:
    """Holds open connections and fans notifications out to them."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    @property
    def connection_count(self) -> int:
        return len(self._subscribers)

    # ─── Connection lifecycle ───────────────────────────

    async def connect(self, websocket) -> Subscriber:
        """Register an accepted connection and greet it."""
        subscriber = Subscriber(websocket=websocket)
        self._subscribers.append(subscriber)
        logger.info(
            "notifications.client_connected", connections=self.connection_count
        )
        await self.send(subscriber, "connected", {"message": WELCOME_MESSAGE})
        return subscriber

    def disconnect(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
            logger.info(
                "notifications.client_disconnected",
                connections=self.connection_count,
            )

    async def handle_message(self, subscriber: Subscriber, raw: str) -> None:
        """Dispatch one inbound frame. Bad frames are logged and ignored."""
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("notifications.unparsable_frame", frame=str(raw)[:200])
            return
        if not isinstance(message, dict):
            logger.warning("notifications.unparsable_frame", frame=str(raw)[:200])
            return

        message_type = message.get("type")
        payload = message.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if message_type == "subscribe":
            post_id = payload.get("postId")
            subscriber.post_id = post_tag(post_id)
            logger.info("notifications.subscribed", post_id=subscriber.post_id)
        elif message_type == "ping":
            await self.send(subscriber, "pong", {"timestamp": now_ms()})
        else:
            logger.info("notifications.unknown_message", type=message_type)

    async def close(self) -> None:
        """Close every connection (app shutdown)."""
        for subscriber in list(self._subscribers):
            if subscriber.is_open:
                try:
                    await subscriber.websocket.close()
                except Exception as e:
                    logger.warning("notifications.close_failed", error=str(e))
        self._subscribers.clear()

    # ─── Writes ─────────────────────────────────────────

    async def send(self, subscriber: Subscriber, message_type: str, payload: dict) -> bool:
        """Write one frame to one connection. Returns False if it was skipped."""
        frame = json.dumps({"type": message_type, "payload": payload})
        return await self._write(subscriber, frame)

    async def _write(self, subscriber: Subscriber, frame: str) -> bool:
        if not subscriber.is_open:
            return False
        try:
            await subscriber.websocket.send_text(frame)
        except Exception as e:
            logger.warning("notifications.send_failed", error=str(e))
            self.disconnect(subscriber)
            return False
        return True

    async def broadcast(self, message_type: str, payload: dict) -> int:
        """Write to every open connection. Returns the number delivered."""
        frame = json.dumps({"type": message_type, "payload": payload})
        delivered = 0
        for subscriber in list(self._subscribers):
            if await self._write(subscriber, frame):
                delivered += 1
        return delivered

    async def broadcast_to_post(
        self, post_id: uuid.UUID | str, message_type: str, payload: dict
    ) -> int:
        """Write to connections subscribed to `post_id` or to nothing in particular."""
        target = post_tag(post_id)
        frame = json.dumps({"type": message_type, "payload": payload})
        delivered = 0
        for subscriber in list(self._subscribers):
            if subscriber.post_id is not None and subscriber.post_id != target:
                continue
            if await self._write(subscriber, frame):
                delivered += 1
        logger.debug(
            "notifications.broadcast",
            type=message_type,
            post_id=target,
            delivered=delivered,
        )
        return delivered

    async def notify_reaction_update(
        self,
        post_id: uuid.UUID | str,
        reaction: Optional[dict],
        timestamp: Optional[int] = None,
        **extra: Any,
    ) -> int:
        payload = update_payload(post_id, "reaction", reaction, timestamp, **extra)
        return await self.broadcast_to_post(post_id, WIRE_REACTION_UPDATE, payload)

    async def notify_comment_update(
        self,
        post_id: uuid.UUID | str,
        comment: Optional[dict],
        timestamp: Optional[int] = None,
        **extra: Any,
    ) -> int:
        payload = update_payload(post_id, "comment", comment, timestamp, **extra)
        return await self.broadcast_to_post(post_id, WIRE_COMMENT_UPDATE, payload)


def get_notification_hub(request: Request) -> NotificationHub:
    """FastAPI dependency: the process-wide hub created with the app."""
    return request.app.state.notifications
