"""
Real-time API endpoint for the session relay.

Viewers open a WebSocket here and subscribe to a session to receive updates.
"""

from fastapi import APIRouter, WebSocket

from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(tags=["realtime"])


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for session viewers."""
    container = getattr(websocket.app.state, "container", None)
    gateway = getattr(container, "gateway", None)
    if gateway is None:
        # Must accept before sending or closing with a reason
        await websocket.accept()
        await websocket.send_json({"type": "error", "message": "Service temporarily unavailable"})
        await websocket.close(code=1013)
        logger.warning("WebSocket rejected, gateway not ready")
        return

    await gateway.handle_connection(websocket)
