"""GenRemnant CLI: run the server, manage the database, watch live updates.

Usage:
    genremnant serve                              # Run the API + WebSocket server
    genremnant init-db                            # Create tables (local development)
    genremnant create-admin --email a@x.com --password s3cret --name Admin
    genremnant query "SELECT id, email FROM users WHERE role = ?" admin
    genremnant feed                               # Published posts via the HTTP API
    genremnant watch --post-id <uuid>             # Live reaction/comment updates
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from genremnant import __version__
from genremnant.config import settings
from genremnant.db import engine as db_engine

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = f"http://localhost:{settings.port}"


def _api_url() -> str:
    return os.environ.get("GENREMNANT_API_URL", DEFAULT_API_URL).rstrip("/")


def _ws_url() -> str:
    base = _api_url()
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + settings.ws_path


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the GenRemnant backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) or "-")[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _fail(message: str):
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="genremnant")
def main():
    """GenRemnant: community sermons and daily motivations backend."""


# ---------------------------------------------------------------------------
# genremnant serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: GENREMNANT_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: GENREMNANT_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP API and the /ws notification endpoint."""
    import uvicorn

    uvicorn.run(
        "genremnant.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# genremnant init-db / create-admin
# ---------------------------------------------------------------------------


@main.command("init-db")
def init_db():
    """Create all tables on the configured database (use alembic in production)."""
    _run(_init_db_impl())
    click.secho("Database tables created", fg="green")


async def _init_db_impl():
    from genremnant.db.models import Base

    async with db_engine.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@main.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True, help="At least 6 characters")
@click.option("--name", "display_name", default="Admin", show_default=True)
def create_admin(email: str, password: str, display_name: str):
    """Create an admin account, or promote an existing one. Safe to re-run."""
    if len(password) < 6:
        _fail("Password must be at least 6 characters")
    user_id, created = _run(_create_admin_impl(email, password, display_name))
    verb = "Created" if created else "Promoted existing account to"
    click.secho(f"{verb} admin {email} ({user_id})", fg="green")


async def _create_admin_impl(email: str, password: str, display_name: str):
    from genremnant.services.user_service import UserService

    async with db_engine.async_session_factory() as session:
        user, created = await UserService(session).ensure_admin(email, password, display_name)
        return str(user.id), created


# ---------------------------------------------------------------------------
# genremnant query
# ---------------------------------------------------------------------------


@main.command()
@click.argument("sql")
@click.argument("params", nargs=-1)
def query(sql: str, params: tuple[str, ...]):
    """Run SQL through the configured query backend and print rows as JSON.

    Use ? placeholders; PARAMS are bound in order (as strings).
    """
    from sqlalchemy.exc import SQLAlchemyError

    from genremnant.db.d1 import D1Error

    try:
        rows = _run(_query_impl(sql, list(params)))
    except (D1Error, SQLAlchemyError, ValueError) as e:
        _fail(str(e))
    click.echo(_pretty_json(rows))


async def _query_impl(sql: str, params: list):
    if settings.query_backend == "d1":
        from genremnant.db.d1 import D1Client

        client = D1Client.from_settings(settings)
        try:
            return await client.query(sql, params)
        finally:
            await client.aclose()

    from genremnant.db.executor import SessionQueryExecutor

    async with db_engine.async_session_factory() as session:
        return await SessionQueryExecutor(session).query(sql, params)


# ---------------------------------------------------------------------------
# genremnant feed
# ---------------------------------------------------------------------------


@main.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Max posts to show")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def feed(limit: int, as_json: bool):
    """List published posts, newest first."""
    try:
        posts = _run(_fetch_published(limit))
    except httpx.HTTPError as e:
        _fail(f"could not fetch posts: {e}")

    if as_json:
        click.echo(_pretty_json(posts))
        return
    if not posts:
        click.echo("No published posts yet.")
        return
    _print_table(
        posts,
        [
            ("PUBLISHED", "publishedAt", 20),
            ("TYPE", "type", 16),
            ("AUTHOR", "authorName", 18),
            ("TITLE", "title", 50),
        ],
    )


async def _fetch_published(limit: int) -> list[dict]:
    async with _client() as c:
        r = await c.get("/api/posts/published", params={"limit": limit})
        r.raise_for_status()
        return r.json()


# ---------------------------------------------------------------------------
# genremnant watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--post-id", default=None, help="Only show updates for this post")
@click.option("--after", default=0, show_default=True, help="Polling cursor (event id)")
def watch(post_id: Optional[str], after: int):
    """Print live reaction/comment updates (WebSocket, falls back to polling)."""
    try:
        _run(_watch_impl(post_id, after))
    except KeyboardInterrupt:
        click.echo()


async def _watch_impl(post_id: Optional[str], after: int):
    from genremnant.realtime.client import UpdateReceiver

    async with _client() as http:
        receiver = UpdateReceiver(
            ws_url=_ws_url(),
            updates_url=f"{_api_url()}/api/updates",
            http=http,
            cursor=after,
        )

        def _printer(kind: str):
            def _print(payload: dict):
                color = "magenta" if kind == "reactions" else "cyan"
                click.echo(f"{click.style(kind, fg=color)} {_pretty_json(payload)}")
            return _print

        for kind in ("reactions", "comments"):
            receiver.subscribe(kind, post_id, _printer(kind))
        await receiver.watch_post(post_id)

        click.echo(f"Watching {_ws_url()} (Ctrl+C to stop)")
        await receiver.run()
