"""
Realtime gateway: per-connection WebSocket handling.

Each accepted socket gets a connection record, a lifecycle state machine and
a receive loop dispatching subscribe, unsubscribe and ping commands. The
gateway is also the push transport the session service fans out through.
"""

from typing import TYPE_CHECKING, Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..exceptions import DeliveryFailedError, SessionNotFoundError, StoreUnavailableError
from ..models.session import SessionRecord, ms_to_iso_z
from ..persistence.protocols import ConnectionRegistry
from ..schemas.realtime import (
    VALID_ACTIONS,
    InboundMessage,
    PongMessage,
    SubscribedMessage,
    UnsubscribedMessage,
)
from ..structured_logging.logging_config import bind_request_context, clear_request_context, get_logger
from .connection_manager import ConnectionManager
from .connection_state_machine import ConnectionLifecycle

if TYPE_CHECKING:
    from ..services.session_service import SessionService

logger = get_logger(__name__)


class RealtimeGateway:
    """Owns the live connections of this process and their lifecycles."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        registry: ConnectionRegistry,
        session_service: "SessionService | None" = None,
    ) -> None:
        self.connection_manager = connection_manager
        self.registry = registry
        self.session_service = session_service
        self.lifecycles: dict[str, ConnectionLifecycle] = {}

    # -- push transport -------------------------------------------------

    async def send_to_connection(self, connection_id: str, message: dict[str, Any]) -> None:
        """
        Deliver a fan-out push.

        Raises:
            DeliveryFailedError: the connection is gone
        """
        await self.connection_manager.send_to_connection(connection_id, message)
        if message.get("type") == "session_closed":
            lifecycle = self.lifecycles.get(connection_id)
            if lifecycle is not None and lifecycle.is_subscribed:
                lifecycle.unsubscribe()

    # -- connection handling --------------------------------------------

    def get_connection_state(self, connection_id: str) -> str | None:
        lifecycle = self.lifecycles.get(connection_id)
        return lifecycle.current_state_value if lifecycle is not None else None

    async def handle_connection(self, websocket: WebSocket) -> None:
        """Run one connection from accept to cleanup."""
        connection_id = await self.connection_manager.accept(websocket)
        lifecycle = ConnectionLifecycle(connection_id)
        self.lifecycles[connection_id] = lifecycle
        bind_request_context(connection_id=connection_id, connection_type="websocket")

        try:
            try:
                await self.registry.register(connection_id)
            except StoreUnavailableError as e:
                logger.error("Could not register connection", connection_id=connection_id, error=str(e))
                await self._send_error(
                    connection_id, ErrorType.STORE_UNAVAILABLE, ErrorMessages.INTERNAL_ERROR
                )
                await websocket.close(code=1011)
                return
            await self._message_loop(websocket, connection_id, lifecycle)
        finally:
            await self._cleanup_connection(connection_id, lifecycle)
            clear_request_context()

    async def _message_loop(self, websocket: WebSocket, connection_id: str, lifecycle: ConnectionLifecycle) -> None:
        while True:
            try:
                data = await websocket.receive_text()

                try:
                    message = InboundMessage.model_validate_json(data)
                except ValidationError:
                    logger.info("Invalid message format", connection_id=connection_id)
                    await self._send_error(
                        connection_id, ErrorType.INVALID_FORMAT, ErrorMessages.INVALID_MESSAGE_FORMAT
                    )
                    continue

                await self.dispatch(connection_id, lifecycle, message)

            except WebSocketDisconnect:
                logger.info("WebSocket disconnected", connection_id=connection_id)
                break

            except RuntimeError as e:
                error_message = str(e)
                if "WebSocket is not connected" in error_message or 'Need to call "accept" first' in error_message:
                    logger.warning(
                        "WebSocket connection lost (not connected)", connection_id=connection_id, error=error_message
                    )
                    break
                raise

            except DeliveryFailedError:
                logger.info("Reply could not be delivered, closing loop", connection_id=connection_id)
                break

            except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: one bad frame must not drop the viewer
                logger.error(
                    "Error handling WebSocket message",
                    connection_id=connection_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                try:
                    await self._send_error(connection_id, ErrorType.INTERNAL_ERROR, ErrorMessages.INTERNAL_ERROR)
                except DeliveryFailedError:
                    break

    async def dispatch(self, connection_id: str, lifecycle: ConnectionLifecycle, message: InboundMessage) -> None:
        """Route one validated inbound command."""
        if message.action == "subscribe":
            await self.handle_subscribe(connection_id, lifecycle, message.sessionId)
        elif message.action == "unsubscribe":
            await self.handle_unsubscribe(connection_id, lifecycle)
        elif message.action == "ping":
            await self.handle_ping(connection_id)
        else:
            await self._send_error(
                connection_id,
                ErrorType.INVALID_COMMAND,
                f"Unknown action: {message.action}. Valid actions: {', '.join(VALID_ACTIONS)}",
            )

    async def handle_subscribe(
        self, connection_id: str, lifecycle: ConnectionLifecycle, session_id: str | None
    ) -> None:
        if not session_id:
            await self._send_error(connection_id, ErrorType.MISSING_REQUIRED_FIELD, ErrorMessages.SESSION_ID_REQUIRED)
            return
        if self.session_service is None:
            raise RuntimeError("Realtime gateway has no session service bound")

        async def deliver_snapshot(session: SessionRecord) -> None:
            snapshot = SubscribedMessage(
                sessionId=session.id,
                combatState=session.state,
                expiresAt=ms_to_iso_z(session.expires_at),
            )
            await self.connection_manager.send_to_connection(connection_id, snapshot.model_dump())

        try:
            await self.session_service.attach_viewer(session_id, connection_id, deliver_snapshot)
        except SessionNotFoundError as e:
            if e.expired:
                await self._send_error(connection_id, ErrorType.SESSION_EXPIRED, ErrorMessages.WS_SESSION_EXPIRED)
            else:
                await self._send_error(connection_id, ErrorType.SESSION_NOT_FOUND, ErrorMessages.WS_SESSION_NOT_FOUND)
            return
        except StoreUnavailableError:
            await self._send_error(connection_id, ErrorType.STORE_UNAVAILABLE, ErrorMessages.FAILED_TO_SUBSCRIBE)
            return

        lifecycle.subscribe(session_id=session_id)
        logger.info("Connection subscribed", connection_id=connection_id, session_id=session_id)

    async def handle_unsubscribe(self, connection_id: str, lifecycle: ConnectionLifecycle) -> None:
        try:
            await self.registry.clear(connection_id)
        except StoreUnavailableError:
            await self._send_error(connection_id, ErrorType.STORE_UNAVAILABLE, ErrorMessages.FAILED_TO_UNSUBSCRIBE)
            return
        lifecycle.unsubscribe()
        await self.connection_manager.send_to_connection(
            connection_id, UnsubscribedMessage(message=ErrorMessages.UNSUBSCRIBED).model_dump()
        )
        logger.info("Connection unsubscribed", connection_id=connection_id)

    async def handle_ping(self, connection_id: str) -> None:
        try:
            await self.registry.touch(connection_id)
        except StoreUnavailableError as e:
            # The pong still keeps the transport alive
            logger.warning("Could not refresh connection TTL", connection_id=connection_id, error=str(e))
        await self.connection_manager.send_to_connection(connection_id, PongMessage().model_dump())

    async def _send_error(self, connection_id: str, error_type: ErrorType, message: str) -> None:
        await self.connection_manager.send_to_connection(
            connection_id, create_websocket_error_response(error_type, message)
        )

    async def _cleanup_connection(self, connection_id: str, lifecycle: ConnectionLifecycle) -> None:
        """Remove the connection record and forget the socket."""
        try:
            await self.registry.remove(connection_id)
        except StoreUnavailableError as e:
            logger.error("Error removing connection record", connection_id=connection_id, error=str(e))

        self.connection_manager.release(connection_id)
        if not lifecycle.is_closed:
            lifecycle.disconnect()
        self.lifecycles.pop(connection_id, None)
