"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode: create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

The same code runs against an embedded SQLite file (aiosqlite) and a managed
PostgreSQL server (asyncpg). SQLite needs foreign keys switched on for every
new connection, otherwise ON DELETE CASCADE is silently ignored.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from genremnant.config import settings


def _engine_kwargs(url: str) -> dict:
    """Pool settings per backend. SQLite pools don't take size arguments."""
    if url.startswith("sqlite"):
        return {}
    # Connection pool: min 5, max 20 connections.
    return {"pool_size": 5, "max_overflow": 15, "pool_pre_ping": True}


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on PRAGMA foreign_keys for each connection of a SQLite engine."""
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# echo=True in debug to see SQL queries.
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)
enable_sqlite_foreign_keys(engine)

# Session factory: each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency: yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
