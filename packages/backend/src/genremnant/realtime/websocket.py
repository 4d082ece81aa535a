"""WebSocket endpoint: live reaction/comment notifications.

Learn: Each browser tab opens one connection to /ws. The handler only
registers the connection with the hub and feeds inbound frames to it;
outbound notifications are written by the hub when a route handler
calls notify_*. No authentication: the frames carry nothing that the
public posts API doesn't already expose.
"""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from genremnant.config import settings

logger = structlog.get_logger()
router = APIRouter()


@router.websocket(settings.ws_path)
async def notifications_websocket(websocket: WebSocket):
    """Accept, greet, then read frames until the client goes away."""
    hub = websocket.app.state.notifications
    await websocket.accept()
    subscriber = await hub.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            await hub.handle_message(subscriber, data)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(subscriber)
