"""
Tests for the in-process WebSocket connection manager.
"""

from unittest.mock import AsyncMock, Mock

import pytest
from starlette.websockets import WebSocketDisconnect, WebSocketState

from session_relay.exceptions import DeliveryFailedError
from session_relay.realtime.connection_manager import ConnectionManager


def _websocket() -> AsyncMock:
    websocket = AsyncMock()
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_accept_assigns_unique_ids(self):
        manager = ConnectionManager()

        first = await manager.accept(_websocket())
        second = await manager.accept(_websocket())

        assert first != second
        assert manager.get_connection_count() == 2

    @pytest.mark.asyncio
    async def test_send_delivers_json(self):
        # Setup
        manager = ConnectionManager()
        websocket = _websocket()
        connection_id = await manager.accept(websocket)

        # Execute
        await manager.send_to_connection(connection_id, {"type": "pong"})

        # Verify
        websocket.send_json.assert_awaited_once_with({"type": "pong"})

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection_fails(self):
        manager = ConnectionManager()

        with pytest.raises(DeliveryFailedError):
            await manager.send_to_connection("ghost", {"type": "pong"})

    @pytest.mark.asyncio
    async def test_send_to_closed_socket_fails(self):
        manager = ConnectionManager()
        websocket = _websocket()
        connection_id = await manager.accept(websocket)
        websocket.application_state = WebSocketState.DISCONNECTED

        with pytest.raises(DeliveryFailedError):
            await manager.send_to_connection(connection_id, {"type": "pong"})
        websocket.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [WebSocketDisconnect(code=1006), RuntimeError("closed"), ConnectionResetError()])
    async def test_send_errors_become_delivery_failed(self, error):
        manager = ConnectionManager()
        websocket = _websocket()
        websocket.send_json.side_effect = error
        connection_id = await manager.accept(websocket)

        with pytest.raises(DeliveryFailedError) as exc_info:
            await manager.send_to_connection(connection_id, {"type": "pong"})

        assert exc_info.value.connection_id == connection_id

    @pytest.mark.asyncio
    async def test_release_forgets_connection(self):
        manager = ConnectionManager()
        connection_id = await manager.accept(_websocket())

        manager.release(connection_id)
        manager.release(connection_id)

        assert not manager.has_connection(connection_id)
        assert manager.get_connection_count() == 0

    def test_release_unknown_is_safe(self):
        manager = ConnectionManager()

        manager.release("nobody")

        assert manager.active_websockets == {}

    @pytest.mark.asyncio
    async def test_accept_calls_websocket_accept(self):
        manager = ConnectionManager()
        websocket = Mock()
        websocket.accept = AsyncMock()

        await manager.accept(websocket)

        websocket.accept.assert_awaited_once()
