"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and
dependencies are reachable. The database is probed through the same
QueryExecutor the admin statistics use, i.e. the database the ORM writes
to. When a D1 backend is configured it gets its own "d1" entry. Redis is
optional: when it wasn't connected at startup it reports "disabled" and
doesn't degrade the status.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from genremnant import __version__
from genremnant.db.cache import get_redis
from genremnant.db.d1 import D1Client, D1Error
from genremnant.db.executor import QueryExecutor, get_d1_client, get_query_executor
from genremnant.realtime.hub import NotificationHub, get_notification_hub

logger = structlog.get_logger()
router = APIRouter()


async def _probe(executor: QueryExecutor, name: str) -> str:
    try:
        await executor.query("SELECT 1 AS ok")
        return "ok"
    except (D1Error, SQLAlchemyError, OSError) as e:
        logger.warning(f"health.{name}_error", error=str(e))
        return "error"


@router.get("/health")
async def health_check(
    executor: QueryExecutor = Depends(get_query_executor),
    d1_client: Optional[D1Client] = Depends(get_d1_client),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}
    checks["database"] = await _probe(executor, "database")
    if d1_client is not None:
        checks["d1"] = await _probe(d1_client, "d1")

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except RuntimeError:
        checks["redis"] = "disabled"
    except RedisError as e:
        logger.warning("health.redis_error", error=str(e))
        checks["redis"] = "error"

    healthy = (
        checks["database"] == "ok"
        and checks.get("d1", "ok") == "ok"
        and checks["redis"] != "error"
    )
    return {"status": "healthy" if healthy else "degraded", **checks, "connections": hub.connection_count}
