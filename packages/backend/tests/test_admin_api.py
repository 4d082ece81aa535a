"""Admin API tests: user moderation, contributor requests, post moderation, dashboard."""

import pytest


@pytest.mark.asyncio
async def test_admin_routes_require_admin(client, make_user):
    _, regular_headers = await make_user()
    _, contributor_headers = await make_user(role="contributor")

    assert (await client.get("/api/admin/users")).status_code == 401
    assert (await client.get("/api/admin/users", headers=regular_headers)).status_code == 403
    assert (await client.get("/api/admin/users", headers=contributor_headers)).status_code == 403


@pytest.mark.asyncio
async def test_suspended_admin_is_locked_out(client, make_user):
    _, headers = await make_user(role="admin", status="suspended")
    r = await client.get("/api/admin/users", headers=headers)
    assert r.status_code == 403


# ═══════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_users(client, make_user):
    _, headers = await make_user(role="admin")
    await make_user()
    r = await client.get("/api/admin/users", headers=headers)
    assert r.status_code == 200
    assert len(r.json()) == 2
    assert "email" in r.json()[0]


@pytest.mark.asyncio
async def test_change_role(client, make_user):
    _, headers = await make_user(role="admin")
    member, _ = await make_user()
    r = await client.post(
        "/api/admin/users/change-role",
        json={"userId": str(member.id), "newRole": "contributor"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["role"] == "contributor"

    bad = await client.post(
        "/api/admin/users/change-role",
        json={"userId": str(member.id), "newRole": "owner"},
        headers=headers,
    )
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_admin_cannot_moderate_self(client, make_user):
    admin, headers = await make_user(role="admin")
    r = await client.post(
        "/api/admin/users/change-role",
        json={"userId": str(admin.id), "newRole": "regular"},
        headers=headers,
    )
    assert r.status_code == 400
    assert (await client.delete(f"/api/admin/users/{admin.id}", headers=headers)).status_code == 400


@pytest.mark.asyncio
async def test_suspend_and_activate(client, make_user):
    _, headers = await make_user(role="admin")
    member, member_headers = await make_user()

    r = await client.post("/api/admin/users/suspend", json={"userId": str(member.id)}, headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "suspended"
    login = await client.post("/auth/login", json={"email": member.email, "password": "secret123"})
    assert login.status_code == 403
    assert (await client.get("/api/users/profile", headers=member_headers)).status_code == 403

    r = await client.post("/api/admin/users/activate", json={"userId": str(member.id)}, headers=headers)
    assert r.json()["status"] == "active"
    login = await client.post("/auth/login", json={"email": member.email, "password": "secret123"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_moderate_unknown_user(client, make_user):
    _, headers = await make_user(role="admin")
    r = await client.post(
        "/api/admin/users/suspend",
        json={"userId": "00000000-0000-0000-0000-000000000000"},
        headers=headers,
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_update_whatsapp(client, make_user):
    _, headers = await make_user(role="admin")
    member, _ = await make_user()
    r = await client.post(
        "/api/admin/users/update-whatsapp",
        json={"userId": str(member.id), "whatsapp": "+15550123"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["whatsapp"] == "+15550123"


@pytest.mark.asyncio
async def test_delete_user_removes_their_content(client, make_user, make_post):
    _, admin_headers = await make_user(role="admin")
    author, author_headers = await make_user(role="contributor")
    reader, reader_headers = await make_user()
    own_post = await make_post(author, title="Author's post")
    other_post = await make_post(reader, title="Reader's post")

    await client.post(
        "/api/comments", json={"postId": str(own_post.id), "text": "on own"}, headers=reader_headers
    )
    await client.post(
        "/api/comments", json={"postId": str(other_post.id), "text": "by author"}, headers=author_headers
    )
    await client.post(
        "/api/users/friend-request", json={"userId": str(reader.id)}, headers=author_headers
    )

    r = await client.delete(f"/api/admin/users/{author.id}", headers=admin_headers)
    assert r.status_code == 200

    assert (await client.get(f"/api/posts/{own_post.id}")).status_code == 404
    assert (await client.get(f"/api/comments/post/{other_post.id}")).json() == []
    friends = (await client.get("/api/users/friends", headers=reader_headers)).json()
    assert friends["requests"] == []
    users = (await client.get("/api/admin/users", headers=admin_headers)).json()
    assert str(author.id) not in {u["id"] for u in users}


# ═══════════════════════════════════════════════════════════
# Contributor requests
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_approve_contributor(client, make_user):
    _, admin_headers = await make_user(role="admin")
    member, member_headers = await make_user(name="Lydia")
    await client.post("/api/users/contributor-request", headers=member_headers)

    pending = (await client.get("/api/admin/users/contributor-requests", headers=admin_headers)).json()
    assert [(p["userId"], p["displayName"]) for p in pending] == [(str(member.id), "Lydia")]

    r = await client.post(
        "/api/admin/users/approve-contributor", json={"userId": str(member.id)}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["role"] == "contributor"
    assert r.json()["contributorRequestStatus"] == "approved"

    assert (await client.get("/api/admin/users/contributor-requests", headers=admin_headers)).json() == []

    # Approving twice: nothing pending any more
    again = await client.post(
        "/api/admin/users/approve-contributor", json={"userId": str(member.id)}, headers=admin_headers
    )
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_reject_contributor_then_request_again(client, make_user):
    _, admin_headers = await make_user(role="admin")
    member, member_headers = await make_user()
    await client.post("/api/users/contributor-request", headers=member_headers)

    r = await client.post(
        "/api/admin/users/reject-contributor",
        json={"userId": str(member.id), "feedback": "Share a sample sermon first"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["role"] == "regular"
    assert r.json()["contributorRequestStatus"] == "rejected"
    assert r.json()["rejectionFeedback"] == "Share a sample sermon first"

    history = (
        await client.get(
            "/api/admin/users/contributor-requests", params={"status": "all"}, headers=admin_headers
        )
    ).json()
    assert history[0]["status"] == "rejected"
    assert history[0]["feedback"] == "Share a sample sermon first"

    again = await client.post("/api/users/contributor-request", headers=member_headers)
    assert again.status_code == 201
    profile = (await client.get("/api/users/profile", headers=member_headers)).json()
    assert profile["contributorRequestStatus"] == "pending"
    assert profile["rejectionFeedback"] is None


# ═══════════════════════════════════════════════════════════
# Posts
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_pending_queue_and_approve(client, make_user, make_post):
    _, admin_headers = await make_user(role="admin")
    author, _ = await make_user(role="contributor")
    post = await make_post(author, status="pending")
    await make_post(author, title="Already out")

    queue = (await client.get("/api/admin/posts/pending", headers=admin_headers)).json()
    assert [p["id"] for p in queue] == [str(post.id)]

    r = await client.post("/api/admin/posts/approve", json={"postId": str(post.id)}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "published"
    assert r.json()["publishedAt"] is not None

    assert (await client.get(f"/api/posts/{post.id}")).status_code == 200

    again = await client.post("/api/admin/posts/approve", json={"postId": str(post.id)}, headers=admin_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_reject_post_with_feedback(client, make_user, make_post):
    _, admin_headers = await make_user(role="admin")
    author, author_headers = await make_user(role="contributor")
    post = await make_post(author, status="pending")

    r = await client.post(
        "/api/admin/posts/reject",
        json={"postId": str(post.id), "feedback": "Please cite scripture"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "rejected"

    mine = (await client.get("/api/posts/my-posts", headers=author_headers)).json()
    assert mine[0]["rejectionFeedback"] == "Please cite scripture"


@pytest.mark.asyncio
async def test_admin_edit_published_post(client, make_user, make_post):
    _, admin_headers = await make_user(role="admin")
    author, _ = await make_user(role="contributor")
    post = await make_post(author)

    r = await client.put(
        "/api/admin/posts/edit",
        json={"postId": str(post.id), "title": "Corrected title"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["title"] == "Corrected title"
    assert r.json()["status"] == "published"


@pytest.mark.asyncio
async def test_admin_delete_post(client, make_user, make_post):
    _, admin_headers = await make_user(role="admin")
    author, _ = await make_user(role="contributor")
    post = await make_post(author)
    r = await client.delete(f"/api/admin/posts/{post.id}", headers=admin_headers)
    assert r.status_code == 200
    missing = await client.delete(f"/api/admin/posts/{post.id}", headers=admin_headers)
    assert missing.status_code == 404


# ═══════════════════════════════════════════════════════════
# Interactions
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_admin_removes_comment_and_reaction(
    client, hub, make_user, make_post, fake_websocket_cls
):
    _, admin_headers = await make_user(role="admin")
    author, _ = await make_user(role="contributor")
    reader, reader_headers = await make_user()
    post = await make_post(author)
    ws = fake_websocket_cls()
    await hub.connect(ws)

    await client.post(
        "/api/comments", json={"postId": str(post.id), "text": "spam spam"}, headers=reader_headers
    )
    await client.post(
        "/api/reactions", json={"postId": str(post.id), "reactionType": "angry"}, headers=reader_headers
    )

    comments = (await client.get("/api/admin/comments", headers=admin_headers)).json()
    reactions = (await client.get("/api/admin/reactions", headers=admin_headers)).json()
    assert len(comments) == 1 and len(reactions) == 1

    r1 = await client.delete(f"/api/admin/comments/{comments[0]['id']}", headers=admin_headers)
    r2 = await client.delete(f"/api/admin/reactions/{reactions[0]['id']}", headers=admin_headers)
    assert r1.status_code == 200 and r2.status_code == 200

    assert ws.of_type("comment_update")[-1]["payload"]["commentId"] == comments[0]["id"]
    assert ws.of_type("reaction_update")[-1]["payload"]["userId"] == str(reader.id)


# ═══════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_statistics(client, make_user, make_post):
    _, admin_headers = await make_user(role="admin")
    author, _ = await make_user(role="contributor")
    _, reader_headers = await make_user()
    await make_user(status="suspended")
    published = await make_post(author)
    await make_post(author, status="pending")
    await client.post(
        "/api/comments", json={"postId": str(published.id), "text": "Nice"}, headers=reader_headers
    )
    await client.post(
        "/api/reactions", json={"postId": str(published.id), "reactionType": "like"}, headers=reader_headers
    )
    await client.post("/api/users/contributor-request", headers=reader_headers)

    r = await client.get("/api/admin/statistics", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {
        "totalUsers": 4,
        "regularUsers": 2,
        "contributors": 1,
        "admins": 1,
        "suspendedUsers": 1,
        "totalPosts": 2,
        "publishedPosts": 1,
        "pendingPosts": 1,
        "totalComments": 1,
        "totalReactions": 1,
        "pendingContributorRequests": 1,
    }


@pytest.mark.asyncio
async def test_audit_log_newest_first(client, make_user):
    _, admin_headers = await make_user(role="admin")
    member, _ = await make_user()
    await client.post("/api/admin/users/suspend", json={"userId": str(member.id)}, headers=admin_headers)
    await client.post("/api/admin/users/activate", json={"userId": str(member.id)}, headers=admin_headers)

    events = (await client.get("/api/admin/audit", headers=admin_headers)).json()
    assert [e["type"] for e in events[:2]] == ["user.status_changed", "user.status_changed"]
    assert events[0]["data"] == {"from": "suspended", "to": "active"}
    assert events[0]["streamId"] == f"user:{member.id}"
    assert "actor_id" in events[0]["meta"]
