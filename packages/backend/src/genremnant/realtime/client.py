"""Update receiver: the client side of the notification channel.

Learn: used by `genremnant watch` and by anything else that wants live
reaction/comment updates from a running server.

State machine:

    DISCONNECTED → CONNECTING → CONNECTED
                        ↑            │ (socket closed / failed)
                        │            ↓
                        └──── RECONNECTING   (sleep reconnect_delay × attempt)
                                     │ (more than max_reconnect_attempts)
                                     ↓
                                  POLLING    (GET /api/updates every poll_interval,
                                              never tries the socket again)

A successful connection resets the attempt counter. Pushed frames and
polled updates both go through dispatch(), so subscribers can't tell
which transport delivered an update.

Callbacks are registered per (kind, post id), kind being "reactions" or
"comments". post_id=None subscribes to every post. Callbacks may be plain
functions or coroutine functions; an exception in one is logged and
doesn't stop the others.
"""

import asyncio
import inspect
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
import websockets
from websockets.exceptions import WebSocketException

logger = structlog.get_logger()

Callback = Callable[[dict], Any]

# Wire type → subscription kind
KIND_BY_TYPE = {
    "reaction_update": "reactions",
    "comment_update": "comments",
}


class ReceiverState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    POLLING = "polling"


class UpdateReceiver:
    """WebSocket listener with linear backoff and a polling fallback."""

    def __init__(
        self,
        ws_url: str,
        updates_url: str,
        http: Optional[httpx.AsyncClient] = None,
        connect: Optional[Callable[[str], Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        poll_interval: float = 5.0,
        cursor: int = 0,
    ):
        self.ws_url = ws_url
        self.updates_url = updates_url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.poll_interval = poll_interval
        self.cursor = cursor

        self.state = ReceiverState.DISCONNECTED
        self.reconnect_attempts = 0
        self.post_id: Optional[str] = None

        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._owns_http = http is None
        self._connect = connect or websockets.connect
        self._sleep = sleep
        self._connection = None
        self._running = False
        self._callbacks: dict[tuple[str, Optional[str]], list[Callback]] = {}

    # ─── Callback registry ──────────────────────────────

    def subscribe(self, kind: str, post_id: Optional[str], callback: Callback) -> None:
        self._callbacks.setdefault((kind, _key(post_id)), []).append(callback)

    def unsubscribe(self, kind: str, post_id: Optional[str], callback: Callback) -> bool:
        """Remove `callback` (matched by identity). Returns False if it wasn't registered."""
        callbacks = self._callbacks.get((kind, _key(post_id)), [])
        for index, registered in enumerate(callbacks):
            if registered is callback:
                del callbacks[index]
                if not callbacks:
                    del self._callbacks[(kind, _key(post_id))]
                return True
        return False

    def callbacks_for(self, kind: str, post_id: Optional[str]) -> list[Callback]:
        return list(self._callbacks.get((kind, _key(post_id)), []))

    async def dispatch(self, message: dict) -> int:
        """Deliver one {type, payload} message. Returns how many callbacks ran."""
        kind = KIND_BY_TYPE.get(message.get("type"))
        payload = message.get("payload") or {}
        if kind is None:
            logger.debug("receiver.ignored_message", type=message.get("type"))
            return 0

        post_id = _key(payload.get("postId"))
        targets = self.callbacks_for(kind, post_id)
        if post_id is not None:
            targets += self.callbacks_for(kind, None)

        for callback in targets:
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning("receiver.callback_failed", kind=kind, error=str(e))
        return len(targets)

    # ─── Outbound ───────────────────────────────────────

    async def watch_post(self, post_id: Optional[str]) -> None:
        """Narrow pushed updates to one post (None = all posts)."""
        self.post_id = _key(post_id)
        if self._connection is not None:
            # null clears the server-side tag on a live connection
            await self._send("subscribe", {"postId": self.post_id})

    async def _send(self, message_type: str, payload: dict) -> None:
        await self._connection.send(json.dumps({"type": message_type, "payload": payload}))

    # ─── Run loop ───────────────────────────────────────

    async def run(self) -> None:
        """Connect, listen, reconnect with backoff, then poll for good."""
        self._running = True
        self.state = ReceiverState.CONNECTING
        try:
            while self._running:
                await self._listen_once()
                if not self._running:
                    break
                if self.reconnect_attempts >= self.max_reconnect_attempts:
                    logger.warning(
                        "receiver.fallback_to_polling",
                        attempts=self.reconnect_attempts,
                        interval=self.poll_interval,
                    )
                    await self._poll_loop()
                    break
                self.reconnect_attempts += 1
                self.state = ReceiverState.RECONNECTING
                delay = self.reconnect_delay * self.reconnect_attempts
                logger.info(
                    "receiver.reconnecting", attempt=self.reconnect_attempts, delay=delay
                )
                await self._sleep(delay)
        finally:
            self._running = False
            self.state = ReceiverState.DISCONNECTED
            if self._owns_http:
                await self._http.aclose()

    def stop(self) -> None:
        """Signal the loop to exit after the current step."""
        self._running = False

    async def _listen_once(self) -> None:
        """One connection attempt; returns when the socket closes or fails."""
        try:
            async with self._connect(self.ws_url) as connection:
                self._connection = connection
                self.state = ReceiverState.CONNECTED
                self.reconnect_attempts = 0
                logger.info("receiver.connected", url=self.ws_url)
                if self.post_id is not None:
                    await self._send("subscribe", {"postId": self.post_id})
                async for raw in connection:
                    await self._handle_frame(raw)
                    if not self._running:
                        break
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("receiver.connection_failed", error=str(e))
        finally:
            self._connection = None

    async def _handle_frame(self, raw) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("receiver.unparsable_frame")
            return
        if not isinstance(message, dict):
            return
        if message.get("type") in ("connected", "pong"):
            logger.debug("receiver.server_message", type=message["type"])
            return
        await self.dispatch(message)

    # ─── Polling fallback ───────────────────────────────

    async def _poll_loop(self) -> None:
        self.state = ReceiverState.POLLING
        while self._running:
            await self.poll_once()
            if not self._running:
                break
            await self._sleep(self.poll_interval)

    async def poll_once(self) -> int:
        """Fetch updates after the cursor and dispatch them. Returns the count."""
        try:
            response = await self._http.get(self.updates_url, params={"after": self.cursor})
            response.raise_for_status()
            updates = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("receiver.poll_failed", error=str(e))
            return 0

        for update in updates:
            self.cursor = max(self.cursor, int(update.get("id", 0)))
            await self.dispatch(update)
        return len(updates)


def _key(post_id: Any) -> Optional[str]:
    return str(post_id) if post_id not in (None, "") else None
