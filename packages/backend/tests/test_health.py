"""Health endpoint tests."""

import httpx
import pytest

from genremnant.db.d1 import D1Client, D1Error
from genremnant.db.executor import get_query_executor
from genremnant.main import app


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    # No Redis in tests: reported, not fatal
    assert data["redis"] == "disabled"
    assert data["connections"] == 0
    assert "d1" not in data
    assert "version" in data


@pytest.mark.asyncio
async def test_health_reports_database_error(client):
    class BrokenExecutor:
        async def query(self, sql, params=None):
            raise D1Error("D1 request failed: timed out")

    app.dependency_overrides[get_query_executor] = lambda: BrokenExecutor()
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["database"] == "error"


@pytest.mark.asyncio
async def test_statistics_backend_failure_is_502(client, make_user):
    class BrokenExecutor:
        async def query(self, sql, params=None):
            raise D1Error("D1 query failed: 500 - secret internals", status=500)

    _, headers = await make_user(role="admin")
    app.dependency_overrides[get_query_executor] = lambda: BrokenExecutor()
    resp = await client.get("/api/admin/statistics", headers=headers)
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Query backend unavailable"


# ─── D1 configured alongside the ORM database ───────────


def _d1_worker(handler) -> D1Client:
    return D1Client(
        use_worker=True,
        worker_url="https://worker.test",
        worker_secret="s3cret",
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_statistics_count_rows_written_through_the_api(client, make_user, monkeypatch):
    """A configured D1 backend does not replace the database the app writes to."""
    d1_calls = []

    def handler(request):
        d1_calls.append(request.url.path)
        return httpx.Response(200, json={"success": True, "results": [{"totalPosts": 999}]})

    monkeypatch.setattr(app.state, "d1_client", _d1_worker(handler))
    _, admin_headers = await make_user(role="admin")
    _, author_headers = await make_user(role="contributor")
    created = await client.post(
        "/api/posts",
        json={"type": "sermon", "title": "Salt and light", "content": "You are the salt of the earth."},
        headers=author_headers,
    )
    assert created.status_code == 201

    r = await client.get("/api/admin/statistics", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["totalPosts"] == 1
    assert r.json()["pendingPosts"] == 1
    assert d1_calls == []


@pytest.mark.asyncio
async def test_health_probes_d1_separately(client, monkeypatch):
    monkeypatch.setattr(
        app.state, "d1_client", _d1_worker(lambda r: httpx.Response(503, text="worker down"))
    )
    data = (await client.get("/health")).json()
    assert data["database"] == "ok"
    assert data["d1"] == "error"
    assert data["status"] == "degraded"

    monkeypatch.setattr(
        app.state,
        "d1_client",
        _d1_worker(lambda r: httpx.Response(200, json={"success": True, "results": [{"ok": 1}]})),
    )
    data = (await client.get("/health")).json()
    assert data["d1"] == "ok"
    assert data["status"] == "healthy"
