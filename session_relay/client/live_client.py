"""
Client facade used by host and viewer pages.

Bundles the session API client with at most one live subscription per
instance. Pages construct their own LiveSessionClient and dispose of it
with disconnect()/aclose(); nothing here is process-global.
"""

import inspect
from collections.abc import Callable
from typing import Any

from ..config.models import ClientConfig
from ..structured_logging.logging_config import get_logger
from .http_client import SessionApiClient, SessionClientError
from .live_connection import DISCONNECTED, Connector, MessageHandler, SessionSubscription
from .reconnect import ReconnectPolicy

logger = get_logger(__name__)


class LiveSessionClient:
    """Session CRUD plus a single live subscription."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        api_client: SessionApiClient | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        if not self.config.websocket_api_url:
            logger.warning("WebSocket API URL is not set")
        self.api = api_client or SessionApiClient(
            self.config.sessions_api_url, timeout=self.config.request_timeout_seconds
        )
        self._connector = connector
        self._subscription: SessionSubscription | None = None
        self._handlers: list[MessageHandler] = []

    # -- session CRUD ---------------------------------------------------

    async def create_session(self, state: Any, expires_in_minutes: int = 480) -> dict[str, Any]:
        return await self.api.create_session(state, expires_in_minutes)

    async def get_session(self, session_id: str) -> dict[str, Any]:
        return await self.api.get_session(session_id)

    async def update_session(
        self, session_id: str, state: Any, extend_ttl_minutes: int | None = None
    ) -> dict[str, Any]:
        return await self.api.update_session(session_id, state, extend_ttl_minutes)

    async def delete_session(self, session_id: str) -> dict[str, Any]:
        return await self.api.delete_session(session_id)

    # -- live subscription ----------------------------------------------

    @property
    def subscription(self) -> SessionSubscription | None:
        return self._subscription

    async def subscribe_to_session(
        self,
        session_id: str,
        on_update: Callable[[Any], Any],
        on_error: Callable[[Exception], Any] | None = None,
        on_close: Callable[[str], Any] | None = None,
        timeout: float | None = None,
    ) -> SessionSubscription:
        """
        Open a live subscription and wait for the initial snapshot.

        Any previous subscription on this client is closed first.

        Raises:
            SessionClientError: no WebSocket URL is configured, or the server rejected the subscription
            TransportError: the connection could not be established
        """
        if not self.config.websocket_api_url:
            raise SessionClientError("WebSocket API URL not configured")

        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

        subscription = SessionSubscription(
            self.config.websocket_api_url,
            session_id,
            on_update,
            on_error,
            on_close,
            ping_interval=self.config.ping_interval_seconds,
            reconnect_policy=ReconnectPolicy(
                max_attempts=self.config.max_reconnect_attempts,
                base_delay=self.config.reconnect_base_delay_seconds,
                max_delay=self.config.reconnect_max_delay_seconds,
            ),
            connector=self._connector,
        )
        subscription.add_message_handler(self._relay_message)
        self._subscription = subscription

        await subscription.open()
        try:
            await subscription.wait_subscribed(timeout)
        except BaseException:
            await subscription.close()
            if self._subscription is subscription:
                self._subscription = None
            raise
        return subscription

    async def unsubscribe_from_session(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()

    async def disconnect(self) -> None:
        """Close the live connection and drop message handlers. Idempotent."""
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            await subscription.close()
        self._handlers.clear()

    def add_message_handler(self, handler: MessageHandler) -> Callable[[], None]:
        """Listen to every message of the current and future subscriptions."""
        self._handlers.append(handler)

        def remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return remove

    async def _relay_message(self, message: dict[str, Any]) -> None:
        for handler in list(self._handlers):
            result = handler(message)
            if inspect.isawaitable(result):
                await result

    def is_connected(self) -> bool:
        return self._subscription is not None and self._subscription.is_connected

    def connection_state(self) -> str:
        if self._subscription is None:
            return DISCONNECTED
        return self._subscription.state

    async def aclose(self) -> None:
        await self.disconnect()
        await self.api.aclose()
