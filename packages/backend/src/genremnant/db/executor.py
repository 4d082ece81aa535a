"""Raw SQL query executors: query(sql, params) -> rows.

Learn: most of the app talks to the ORM, but a few places (admin
statistics, the health probe, the `genremnant query` CLI command) only
need "run this SQL, give me dict rows". Those go through a QueryExecutor
so the same call works against:

- the SQLAlchemy engine (SQLite file or PostgreSQL, whatever database_url is)
- Cloudflare D1 over HTTP (see db/d1.py)

The ORM always writes to database_url, so the in-app readers (statistics,
health) stay on the session executor. D1 is an explicit side channel: the
CLI query command and the extra "d1" health check.

SQL is written with `?` positional placeholders, the form D1 and SQLite
use natively. For SQLAlchemy they are rewritten to named binds.
"""

from typing import Any, Optional, Protocol, Sequence

from fastapi import Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.db.d1 import D1Client
from genremnant.db.engine import get_db


class QueryExecutor(Protocol):
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> list: ...


def bind_positional(sql: str, params: Sequence[Any]) -> tuple[str, dict]:
    """Rewrite `?` placeholders to `:p0, :p1, ...` for sqlalchemy.text().

    Placeholders inside quoted literals or identifiers are left alone, and
    literal colons are escaped so text() does not mistake them for binds.
    """
    out: list[str] = []
    quote: Optional[str] = None
    index = 0
    for char in sql:
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "?":
            out.append(f":p{index}")
            index += 1
            continue
        if char == ":":
            out.append("\\:")
            continue
        out.append(char)

    if index != len(params):
        raise ValueError(
            f"SQL has {index} placeholders but {len(params)} parameters were given"
        )
    return "".join(out), {f"p{i}": value for i, value in enumerate(params)}


class SessionQueryExecutor:
    """Runs raw SQL on an AsyncSession.

    Statements that return rows give a list of dicts. Anything else is
    committed and reported as [{"changes": rowcount}].
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> list:
        statement, binds = bind_positional(sql, list(params or []))
        result = await self.db.execute(text(statement), binds)
        if result.returns_rows:
            return [dict(row._mapping) for row in result]
        await self.db.commit()
        return [{"changes": result.rowcount}]


async def get_query_executor(db: AsyncSession = Depends(get_db)) -> QueryExecutor:
    """FastAPI dependency: raw SQL on the request's session.

    Always the ORM's own database, so statistics and the health probe
    count the rows the app actually writes. D1 is reached explicitly,
    through get_d1_client or the `genremnant query` command.
    """
    return SessionQueryExecutor(db)


def get_d1_client(request: Request) -> Optional[D1Client]:
    """FastAPI dependency: the D1 client built at startup, or None."""
    return getattr(request.app.state, "d1_client", None)
