"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at two levels. The admin router gets its role
check at include_router level using FastAPI's dependencies parameter,
which protects every admin route without touching the handlers. The
other routers mix public reads (published posts, comments, reaction
counts) with authenticated writes, so they declare auth per handler.
"""

from fastapi import APIRouter, Depends

from genremnant.api.admin import router as admin_router
from genremnant.api.auth import router as auth_router
from genremnant.api.comments import router as comments_router
from genremnant.api.health import router as health_router
from genremnant.api.posts import router as posts_router
from genremnant.api.reactions import router as reactions_router
from genremnant.api.updates import router as updates_router
from genremnant.api.users import router as users_router
from genremnant.auth.dependencies import require_roles

api_router = APIRouter()

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(updates_router, tags=["updates"])

# Mixed routes: public reads, authenticated writes
api_router.include_router(posts_router, tags=["posts"])
api_router.include_router(comments_router, tags=["comments"])
api_router.include_router(reactions_router, tags=["reactions"])
api_router.include_router(users_router, tags=["users", "friendships"])

# Admin-only routes
api_router.include_router(
    admin_router, tags=["admin"], dependencies=[Depends(require_roles("admin"))]
)
