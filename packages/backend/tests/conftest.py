"""Test fixtures: an isolated in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI + aiosqlite:

1. Each test gets its own in-memory SQLite engine (function-scoped).
   StaticPool keeps exactly one connection, so every session sees the
   same database for the lifetime of the test.
2. Tables are created from the ORM metadata, not migrations.
3. get_db is overridden to hand out sessions from that engine, so the
   real service layer (commits included) runs unchanged.
4. After the test the engine is disposed and the database vanishes.

Settings are read once at import time, so the env vars below must be set
before anything from genremnant is imported.
"""

import os

os.environ.setdefault("GENREMNANT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GENREMNANT_QUERY_BACKEND", "sql")
os.environ["GENREMNANT_BCRYPT_ROUNDS"] = "4"

import itertools
import json
import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from genremnant.auth.jwt import create_access_token
from genremnant.auth.password import hash_password
from genremnant.db.engine import enable_sqlite_foreign_keys, get_db
from genremnant.db.models import Base, Post, User
from genremnant.main import app
from genremnant.realtime.hub import NotificationHub

DEFAULT_PASSWORD = "secret123"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client against the real app, backed by the per-test database.

    Learn: ASGITransport doesn't run the lifespan, so Redis is never
    connected and rate limiting is skipped. Auth is NOT overridden;
    tests send real Bearer tokens from the make_user fixture.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.notifications = NotificationHub()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def hub(client) -> NotificationHub:
    """The hub the app under test pushes notifications through."""
    return app.state.notifications


@pytest.fixture()
def make_user(session_factory):
    """Factory: insert a user and return (user, auth headers)."""
    counter = itertools.count(1)

    async def _make(
        role: str = "regular",
        status: str = "active",
        name: str | None = None,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
    ):
        n = next(counter)
        async with session_factory() as session:
            user = User(
                email=email or f"member{n}-{uuid.uuid4().hex[:6]}@example.com",
                display_name=name or f"Member {n}",
                password_hash=hash_password(password),
                role=role,
                status=status,
            )
            session.add(user)
            await session.commit()
        token = create_access_token(str(user.id), user.email, user.role)
        return user, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture()
def make_post(session_factory):
    """Factory: insert a post directly (default: already published)."""

    async def _make(
        author: User,
        title: str = "Walking in grace",
        content: str = "Grace upon grace.",
        type: str = "sermon",
        status: str = "published",
        summary: str | None = None,
    ) -> Post:
        async with session_factory() as session:
            post = Post(
                author_id=author.id,
                type=type,
                title=title,
                content=content,
                summary=summary,
                status=status,
                published_at=datetime.now(timezone.utc) if status == "published" else None,
            )
            session.add(post)
            await session.commit()
        return post

    return _make


class FakeWebSocket:
    """Stands in for a Starlette WebSocket in hub tests."""

    def __init__(self, fail_on_send: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail_on_send = fail_on_send
        self.sent: list[dict] = []
        self.closed = False

    async def send_text(self, data: str) -> None:
        if self.fail_on_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == message_type]


@pytest.fixture()
def fake_websocket_cls():
    return FakeWebSocket
