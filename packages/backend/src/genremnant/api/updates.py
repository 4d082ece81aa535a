"""Updates feed: the polling fallback for clients without a WebSocket.

Learn: GET /api/updates?after=<cursor> returns the reaction/comment
notifications recorded after that event id, oldest first, in the same
{type, payload} envelope the WebSocket pushes (plus the event id). The
client keeps the last id it saw and sends it back as the next cursor.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.config import settings
from genremnant.db.engine import get_db
from genremnant.schemas.interaction import UpdateRead
from genremnant.services.interaction_service import InteractionService

router = APIRouter(prefix="/api")


@router.get("/updates", response_model=list[UpdateRead])
async def list_updates(
    after: int = Query(0, ge=0, description="Return events with id greater than this"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    svc = InteractionService(db)
    return await svc.updates_since(
        after_id=after, limit=limit or settings.updates_page_size
    )
