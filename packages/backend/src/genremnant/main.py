"""FastAPI application factory.

Learn: App factory pattern: create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, open WebSockets,
the D1 HTTP client, the database engine). Middleware, CORS, exception
handlers and routers are all registered here.

Per-app state lives on app.state and is created in create_app() rather
than in the lifespan, so an app driven without lifespan events (tests
over ASGITransport) still has it:
- app.state.notifications: the NotificationHub
- app.state.d1_client: D1Client when GENREMNANT_QUERY_BACKEND=d1, else None
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from genremnant import __version__
from genremnant.api import api_router
from genremnant.config import settings
from genremnant.log import configure_logging
from genremnant.realtime.hub import NotificationHub

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "genremnant.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        query_backend=settings.query_backend,
    )

    from genremnant.db.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("genremnant.redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        # Redis is optional: the app runs without rate limiting
        logger.warning("genremnant.redis_unavailable", error=str(e))

    yield

    # Shutdown
    logger.info("genremnant.shutdown")

    await app.state.notifications.close()
    if app.state.d1_client is not None:
        await app.state.d1_client.aclose()
    await close_redis()

    from genremnant.db.engine import engine
    await engine.dispose()


# ─── Exception handlers ──────────────────────────────────


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """400 with a fixed message and the field locations, never the raw input."""
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request body", "errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the traceback, answer with a generic 500."""
    logger.exception(
        "http.unhandled_error", method=request.method, path=request.url.path
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging(debug=settings.debug, json_logs=settings.json_logs)

    app = FastAPI(
        title="GenRemnant",
        description="Community sermons and daily motivations: posts, comments, reactions, friendships",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.notifications = NotificationHub()
    app.state.d1_client = None
    if settings.query_backend == "d1":
        from genremnant.db.d1 import D1Client
        app.state.d1_client = D1Client.from_settings(settings)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → RequestId → handler

    from genremnant.middleware.rate_limit import RateLimitMiddleware
    from genremnant.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Mount API routes
    app.include_router(api_router)

    # Mount WebSocket route (live reaction/comment notifications)
    from genremnant.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: genremnant.main:app)
app = create_app()
