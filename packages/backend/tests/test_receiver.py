"""UpdateReceiver tests: callback registry, reconnect backoff, polling fallback.

Learn: the receiver takes its websocket `connect`, its `sleep` and its
HTTP client as constructor arguments, so these tests drive the whole
state machine without a server or real waiting.
"""

import json

import httpx
import pytest

from genremnant.realtime.client import ReceiverState, UpdateReceiver

WS_URL = "ws://test/ws"
UPDATES_URL = "http://test/api/updates"


def _reaction_update(post_id, event_id=None):
    message = {
        "type": "reaction_update",
        "payload": {"postId": post_id, "reaction": {"reactionType": "like"}, "timestamp": 1},
    }
    if event_id is not None:
        message["id"] = event_id
    return message


class FakeConnection:
    """Async-iterable websocket connection that replays canned frames."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)

    async def send(self, data):
        self.sent.append(json.loads(data))


def _refusing_connect(calls):
    def connect(url):
        calls.append(url)
        raise ConnectionRefusedError("nobody home")
    return connect


def _http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ═══════════════════════════════════════════════════════════
# Callback registry
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_dispatch_to_post_and_wildcard_callbacks():
    receiver = UpdateReceiver(WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200, json=[])))
    seen = []

    async def async_callback(payload):
        seen.append(("async", payload["postId"]))

    receiver.subscribe("reactions", "p-1", lambda p: seen.append(("post", p["postId"])))
    receiver.subscribe("reactions", None, async_callback)
    receiver.subscribe("comments", "p-1", lambda p: seen.append(("comments", p["postId"])))

    assert await receiver.dispatch(_reaction_update("p-1")) == 2
    assert sorted(seen) == [("async", "p-1"), ("post", "p-1")]

    seen.clear()
    assert await receiver.dispatch(_reaction_update("p-2")) == 1
    assert seen == [("async", "p-2")]


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_others():
    receiver = UpdateReceiver(WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200, json=[])))
    seen = []

    def broken(payload):
        raise RuntimeError("boom")

    receiver.subscribe("reactions", "p-1", broken)
    receiver.subscribe("reactions", "p-1", seen.append)
    assert await receiver.dispatch(_reaction_update("p-1")) == 2
    assert len(seen) == 1


def test_unsubscribe_by_identity():
    receiver = UpdateReceiver(WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200)))

    def callback(payload):
        pass

    receiver.subscribe("comments", "p-1", callback)
    assert receiver.unsubscribe("comments", "p-1", lambda p: None) is False
    assert receiver.unsubscribe("comments", "p-1", callback) is True
    assert receiver.callbacks_for("comments", "p-1") == []
    assert receiver.unsubscribe("comments", "p-1", callback) is False


@pytest.mark.asyncio
async def test_unknown_message_type_is_ignored():
    receiver = UpdateReceiver(WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200)))
    receiver.subscribe("reactions", None, lambda p: pytest.fail("should not be called"))
    assert await receiver.dispatch({"type": "announcement", "payload": {}}) == 0


# ═══════════════════════════════════════════════════════════
# Connection lifecycle
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_backoff_then_polling_fallback():
    """Five reconnects with linear backoff, then the receiver polls for good."""
    connect_calls = []
    sleeps = []
    polled_cursors = []
    delivered = []

    def handler(request):
        polled_cursors.append(request.url.params["after"])
        if len(polled_cursors) == 1:
            return httpx.Response(200, json=[_reaction_update("p-1", 7), _reaction_update("p-1", 9)])
        return httpx.Response(200, json=[])

    receiver = UpdateReceiver(
        WS_URL,
        UPDATES_URL,
        http=_http(handler),
        connect=_refusing_connect(connect_calls),
        poll_interval=30.0,
    )

    async def fake_sleep(delay):
        sleeps.append(delay)
        if len(polled_cursors) >= 2:
            receiver.stop()

    receiver._sleep = fake_sleep
    receiver.subscribe("reactions", "p-1", delivered.append)

    await receiver.run()

    assert len(connect_calls) == 6
    assert sleeps[:5] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert sleeps[5:] == [30.0, 30.0]
    assert polled_cursors == ["0", "9"]
    assert receiver.cursor == 9
    assert len(delivered) == 2
    assert receiver.state == ReceiverState.DISCONNECTED


@pytest.mark.asyncio
async def test_connected_frames_are_dispatched():
    connection = FakeConnection([
        json.dumps({"type": "connected", "payload": {"message": "Connected to GenRemnant"}}),
        json.dumps(_reaction_update("p-1")),
        "garbage",
        json.dumps({"type": "comment_update", "payload": {"postId": "p-1", "comment": None}}),
    ])
    states = []
    receiver = UpdateReceiver(
        WS_URL,
        UPDATES_URL,
        http=_http(lambda r: httpx.Response(200, json=[])),
        connect=lambda url: connection,
    )

    async def stop_on_sleep(delay):
        states.append((receiver.state, receiver.reconnect_attempts))
        receiver.stop()

    receiver._sleep = stop_on_sleep
    reactions, comments = [], []
    receiver.subscribe("reactions", None, reactions.append)
    receiver.subscribe("comments", None, comments.append)
    await receiver.watch_post("p-1")

    await receiver.run()

    assert connection.sent == [{"type": "subscribe", "payload": {"postId": "p-1"}}]
    assert len(reactions) == 1
    assert comments == [{"postId": "p-1", "comment": None}]
    # The socket closed once, so one reconnect was scheduled
    assert states == [(ReceiverState.RECONNECTING, 1)]


@pytest.mark.asyncio
async def test_watch_post_narrows_then_widens_live_connection():
    receiver = UpdateReceiver(WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200, json=[])))
    connection = FakeConnection([])
    receiver._connection = connection

    await receiver.watch_post("a")
    await receiver.watch_post(None)

    assert connection.sent == [
        {"type": "subscribe", "payload": {"postId": "a"}},
        {"type": "subscribe", "payload": {"postId": None}},
    ]
    assert receiver.post_id is None


@pytest.mark.asyncio
async def test_watch_post_before_connecting_sends_nothing():
    receiver = UpdateReceiver(WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200, json=[])))
    await receiver.watch_post("a")
    assert receiver.post_id == "a"


@pytest.mark.asyncio
async def test_successful_connect_resets_attempts():
    attempts_seen = []
    outcomes = [False, False, True, False]

    def connect(url):
        if outcomes.pop(0):
            return FakeConnection([])
        raise OSError("refused")

    receiver = UpdateReceiver(
        WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(200, json=[])), connect=connect
    )

    async def record(delay):
        attempts_seen.append(receiver.reconnect_attempts)
        if not outcomes:
            receiver.stop()

    receiver._sleep = record
    await receiver.run()

    assert attempts_seen == [1, 2, 1, 2]


@pytest.mark.asyncio
async def test_poll_once_survives_http_errors():
    receiver = UpdateReceiver(
        WS_URL, UPDATES_URL, http=_http(lambda r: httpx.Response(503)), cursor=4
    )
    assert await receiver.poll_once() == 0
    assert receiver.cursor == 4
