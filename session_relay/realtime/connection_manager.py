"""
Live WebSocket bookkeeping for the realtime gateway.

Maps connection ids to the accepted WebSocket objects of this process and
delivers pushes to them. Sends to a single connection are serialized so
messages arrive in the order they were submitted.
"""

import asyncio
import uuid
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from ..exceptions import DeliveryFailedError
from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """In-process registry of open WebSockets, keyed by connection id."""

    def __init__(self) -> None:
        self.active_websockets: dict[str, WebSocket] = {}
        self._send_locks: dict[str, asyncio.Lock] = {}

    async def accept(self, websocket: WebSocket) -> str:
        """Accept the handshake and assign a connection id."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.active_websockets[connection_id] = websocket
        self._send_locks[connection_id] = asyncio.Lock()
        logger.info("WebSocket accepted", connection_id=connection_id, active_connections=len(self.active_websockets))
        return connection_id

    def release(self, connection_id: str) -> None:
        """Forget a connection. Safe to call for unknown ids."""
        removed = self.active_websockets.pop(connection_id, None)
        self._send_locks.pop(connection_id, None)
        if removed is not None:
            logger.info(
                "WebSocket released", connection_id=connection_id, active_connections=len(self.active_websockets)
            )

    def has_connection(self, connection_id: str) -> bool:
        return connection_id in self.active_websockets

    def get_connection_count(self) -> int:
        return len(self.active_websockets)

    async def send_to_connection(self, connection_id: str, message: dict[str, Any]) -> None:
        """
        Send one JSON message to a connection.

        Raises:
            DeliveryFailedError: the connection is unknown to this process or the send failed
        """
        websocket = self.active_websockets.get(connection_id)
        lock = self._send_locks.get(connection_id)
        if websocket is None or lock is None:
            raise DeliveryFailedError(connection_id, "Connection is not open on this gateway")

        async with lock:
            if websocket.application_state == WebSocketState.DISCONNECTED:
                raise DeliveryFailedError(connection_id, "WebSocket already closed")
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, ConnectionError, OSError) as e:
                raise DeliveryFailedError(connection_id, f"WebSocket send failed: {e}") from e
