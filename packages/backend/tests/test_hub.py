"""Notification hub tests: connection set, subscriptions, fan-out, /ws endpoint."""

import json
import uuid

import pytest
from fastapi.testclient import TestClient

from genremnant.main import create_app
from genremnant.realtime.hub import NotificationHub, update_payload


@pytest.mark.asyncio
async def test_connect_sends_welcome(fake_websocket_cls):
    hub = NotificationHub()
    ws = fake_websocket_cls()
    await hub.connect(ws)

    assert hub.connection_count == 1
    assert ws.sent == [
        {"type": "connected", "payload": {"message": "Connected to GenRemnant"}}
    ]


@pytest.mark.asyncio
async def test_ping_gets_pong(fake_websocket_cls):
    hub = NotificationHub()
    ws = fake_websocket_cls()
    subscriber = await hub.connect(ws)

    await hub.handle_message(subscriber, json.dumps({"type": "ping"}))
    (pong,) = ws.of_type("pong")
    assert isinstance(pong["payload"]["timestamp"], int)


@pytest.mark.asyncio
async def test_bad_frames_are_ignored(fake_websocket_cls):
    hub = NotificationHub()
    ws = fake_websocket_cls()
    subscriber = await hub.connect(ws)

    for frame in ("not json", "[1, 2]", json.dumps({"type": "dance"})):
        await hub.handle_message(subscriber, frame)

    assert hub.connection_count == 1
    assert [m["type"] for m in ws.sent] == ["connected"]


@pytest.mark.asyncio
async def test_broadcast_to_post_respects_subscriptions(fake_websocket_cls):
    hub = NotificationHub()
    on_post, on_other, untagged = (fake_websocket_cls() for _ in range(3))
    s1 = await hub.connect(on_post)
    s2 = await hub.connect(on_other)
    await hub.connect(untagged)
    await hub.handle_message(s1, json.dumps({"type": "subscribe", "payload": {"postId": "p-1"}}))
    await hub.handle_message(s2, json.dumps({"type": "subscribe", "payload": {"postId": "p-2"}}))

    delivered = await hub.notify_reaction_update("p-1", {"reactionType": "love"}, timestamp=42)
    assert delivered == 2

    expected = {
        "type": "reaction_update",
        "payload": {"postId": "p-1", "reaction": {"reactionType": "love"}, "timestamp": 42},
    }
    assert on_post.of_type("reaction_update") == [expected]
    assert untagged.of_type("reaction_update") == [expected]
    assert on_other.of_type("reaction_update") == []


@pytest.mark.asyncio
async def test_empty_post_id_clears_subscription(fake_websocket_cls):
    hub = NotificationHub()
    ws = fake_websocket_cls()
    subscriber = await hub.connect(ws)
    await hub.handle_message(subscriber, json.dumps({"type": "subscribe", "payload": {"postId": "p-1"}}))
    await hub.handle_message(subscriber, json.dumps({"type": "subscribe", "payload": {"postId": ""}}))

    assert subscriber.post_id is None
    assert await hub.notify_reaction_update("p-2", {"reactionType": "wow"}) == 1


@pytest.mark.asyncio
async def test_subscription_matches_any_uuid_spelling(fake_websocket_cls):
    hub = NotificationHub()
    post_id = uuid.uuid4()
    upper, braced = fake_websocket_cls(), fake_websocket_cls()
    for ws, spelling in ((upper, str(post_id).upper()), (braced, "{%s}" % post_id)):
        subscriber = await hub.connect(ws)
        await hub.handle_message(
            subscriber, json.dumps({"type": "subscribe", "payload": {"postId": spelling}})
        )

    assert await hub.notify_comment_update(post_id, {"text": "Amen"}) == 2
    assert await hub.notify_comment_update(uuid.uuid4(), {"text": "elsewhere"}) == 0


@pytest.mark.asyncio
async def test_broadcast_reaches_everyone(fake_websocket_cls):
    hub = NotificationHub()
    sockets = [fake_websocket_cls() for _ in range(2)]
    for ws in sockets:
        subscriber = await hub.connect(ws)
        await hub.handle_message(subscriber, json.dumps({"type": "subscribe", "payload": {"postId": "x"}}))

    assert await hub.broadcast("announcement", {"text": "hello"}) == 2


@pytest.mark.asyncio
async def test_failed_write_drops_connection(fake_websocket_cls):
    hub = NotificationHub()
    healthy = fake_websocket_cls()
    broken = fake_websocket_cls()
    await hub.connect(healthy)
    await hub.connect(broken)
    broken.fail_on_send = True

    delivered = await hub.notify_comment_update("p-1", {"text": "hi"})
    assert delivered == 1
    assert hub.connection_count == 1


@pytest.mark.asyncio
async def test_closed_socket_is_skipped(fake_websocket_cls):
    hub = NotificationHub()
    ws = fake_websocket_cls()
    await hub.connect(ws)
    await ws.close()

    assert await hub.broadcast("comment_update", {}) == 0


@pytest.mark.asyncio
async def test_close_closes_every_connection(fake_websocket_cls):
    hub = NotificationHub()
    sockets = [fake_websocket_cls() for _ in range(3)]
    for ws in sockets:
        await hub.connect(ws)

    await hub.close()
    assert hub.connection_count == 0
    assert all(ws.closed for ws in sockets)


def test_update_payload_extra_fields():
    payload = update_payload("p-9", "comment", None, timestamp=7, commentId="c-1")
    assert payload == {"postId": "p-9", "comment": None, "commentId": "c-1", "timestamp": 7}


def test_websocket_endpoint():
    """End to end over a real ASGI websocket: greet, ping/pong, disconnect."""
    app = create_app()
    client = TestClient(app)
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {
            "type": "connected",
            "payload": {"message": "Connected to GenRemnant"},
        }
        assert app.state.notifications.connection_count == 1

        ws.send_text(json.dumps({"type": "ping", "payload": {}}))
        assert ws.receive_json()["type"] == "pong"

    assert app.state.notifications.connection_count == 0
