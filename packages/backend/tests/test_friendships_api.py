"""Friendship tests: request, accept/reject, re-request, unfriend."""

import uuid

import pytest

from genremnant.services.friendship_service import FriendshipService


async def _request(client, user_id, headers):
    return await client.post(
        "/api/users/friend-request", json={"userId": str(user_id)}, headers=headers
    )


@pytest.mark.asyncio
async def test_friend_request_accept_flow(client, make_user):
    alice, alice_headers = await make_user(name="Alice")
    bob, bob_headers = await make_user(name="Bob")

    r = await _request(client, bob.id, alice_headers)
    assert r.status_code == 201
    assert r.json()["message"] == "Friend request sent successfully"

    alice_view = (await client.get("/api/users/friends", headers=alice_headers)).json()
    assert [u["id"] for u in alice_view["sentRequests"]] == [str(bob.id)]
    bob_view = (await client.get("/api/users/friends", headers=bob_headers)).json()
    assert [u["id"] for u in bob_view["requests"]] == [str(alice.id)]

    r = await client.post(
        "/api/users/friend-request/accept", json={"requestId": str(alice.id)}, headers=bob_headers
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Friend request accepted successfully"

    for headers, other in ((alice_headers, bob), (bob_headers, alice)):
        view = (await client.get("/api/users/friends", headers=headers)).json()
        assert [u["id"] for u in view["friends"]] == [str(other.id)]
        assert view["requests"] == []
        assert view["sentRequests"] == []


@pytest.mark.asyncio
async def test_duplicate_request_either_direction(client, make_user):
    alice, alice_headers = await make_user()
    bob, bob_headers = await make_user()
    await _request(client, bob.id, alice_headers)

    assert (await _request(client, bob.id, alice_headers)).status_code == 409
    assert (await _request(client, alice.id, bob_headers)).status_code == 409


@pytest.mark.asyncio
async def test_cannot_befriend_self(client, make_user):
    me, headers = await make_user()
    r = await _request(client, me.id, headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_request_to_unknown_user(client, make_user):
    _, headers = await make_user()
    r = await _request(client, uuid.uuid4(), headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_rejected_request_can_be_sent_again(client, make_user):
    alice, alice_headers = await make_user()
    bob, bob_headers = await make_user()
    await _request(client, bob.id, alice_headers)

    r = await client.post(
        "/api/users/friend-request/reject", json={"requestId": str(alice.id)}, headers=bob_headers
    )
    assert r.status_code == 200
    assert (await client.get("/api/users/friends", headers=bob_headers)).json()["requests"] == []

    # Bob changes his mind and asks Alice himself
    assert (await _request(client, alice.id, bob_headers)).status_code == 201
    alice_view = (await client.get("/api/users/friends", headers=alice_headers)).json()
    assert [u["id"] for u in alice_view["requests"]] == [str(bob.id)]


@pytest.mark.asyncio
async def test_accept_missing_request(client, make_user):
    alice, _ = await make_user()
    _, bob_headers = await make_user()
    r = await client.post(
        "/api/users/friend-request/accept", json={"requestId": str(alice.id)}, headers=bob_headers
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_remove_friend(client, make_user):
    alice, alice_headers = await make_user()
    bob, bob_headers = await make_user()
    await _request(client, bob.id, alice_headers)
    await client.post(
        "/api/users/friend-request/accept", json={"requestId": str(alice.id)}, headers=bob_headers
    )

    r = await client.delete(f"/api/users/friends/{alice.id}", headers=bob_headers)
    assert r.status_code == 200
    assert (await client.get("/api/users/friends", headers=alice_headers)).json()["friends"] == []

    again = await client.delete(f"/api/users/friends/{alice.id}", headers=bob_headers)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_crossing_requests_conflict_instead_of_erroring(client, make_user, monkeypatch):
    """B's request races A's: the existence check misses, the pair constraint catches it."""
    alice, alice_headers = await make_user()
    bob, bob_headers = await make_user()
    assert (await _request(client, bob.id, alice_headers)).status_code == 201

    async def no_pair_yet(self, a, b):
        return None

    monkeypatch.setattr(FriendshipService, "_pair", no_pair_yet)
    r = await _request(client, alice.id, bob_headers)
    assert r.status_code == 409
    assert r.json()["detail"] == "Friendship already exists"
