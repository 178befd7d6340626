"""
Persistent realtime subscription to one session.

A SessionSubscription owns a single WebSocket to the relay: it subscribes on
every (re)connect, keeps the transport alive with periodic pings, dispatches
pushed messages to the caller's callbacks, and reconnects with backoff when
the connection drops unexpectedly. Closing it explicitly never reconnects.
"""

import asyncio
import inspect
import json
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..exceptions import TransportError
from ..structured_logging.logging_config import get_logger
from .http_client import SessionClientError
from .reconnect import ReconnectPolicy

logger = get_logger(__name__)

MessageHandler = Callable[[dict[str, Any]], Any]
Connector = Callable[[str], Awaitable[Any]]

DISCONNECTED = "disconnected"
CONNECTING = "connecting"
CONNECTED = "connected"
CLOSING = "closing"


async def _default_connector(url: str) -> Any:
    return await websockets.connect(url)


NORMAL_CLOSURE = 1000


def _close_code(error: ConnectionClosed) -> int | None:
    frame = error.rcvd or error.sent
    return frame.code if frame is not None else None


def _closed_normally(error: ConnectionClosed) -> bool:
    """Only a 1000 close from the server ends the subscription; 1001 and the rest reconnect."""
    return error.rcvd is not None and error.rcvd.code == NORMAL_CLOSURE


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback. Callback errors are logged, never propagated."""
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: a caller's callback must not kill the receive loop
        logger.error("Subscription callback failed", callback=getattr(callback, "__name__", repr(callback)), error=str(e))


class SessionSubscription:
    """
    One live connection subscribed to one session.

    Args:
        url: Realtime endpoint, e.g. "wss://relay.example.com/ws"
        session_id: Session to subscribe to
        on_update: Called with the state for the snapshot and every update
        on_error: Called with an exception for server errors and exhausted reconnects
        on_close: Called with the reason when the host ends the session
        ping_interval: Seconds between keepalive pings
        reconnect_policy: Retry state; a fresh default policy when omitted
        connector: Coroutine function opening a connection; websockets.connect by default
    """

    def __init__(
        self,
        url: str,
        session_id: str,
        on_update: Callable[[Any], Any],
        on_error: Callable[[Exception], Any] | None = None,
        on_close: Callable[[str], Any] | None = None,
        *,
        ping_interval: float = 30.0,
        reconnect_policy: ReconnectPolicy | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.url = url
        self.session_id = session_id
        self.on_update = on_update
        self.on_error = on_error
        self.on_close = on_close
        self.ping_interval = ping_interval
        self.reconnect_policy = reconnect_policy or ReconnectPolicy()
        self._connector = connector or _default_connector

        self._handlers: list[MessageHandler] = []
        self._ws: Any = None
        self._state = DISCONNECTED
        self._closing = False
        self._run_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None
        self._subscribed: asyncio.Future | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == CONNECTED

    def add_message_handler(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a listener for every inbound message. Returns a function that removes it."""
        self._handlers.append(handler)

        def remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return remove

    async def open(self) -> None:
        """Start connecting in the background. Use wait_subscribed() to wait for the snapshot."""
        if self._run_task is not None:
            return
        self._closing = False
        self._subscribed = asyncio.get_running_loop().create_future()
        self._run_task = asyncio.create_task(self._run(), name=f"session-subscription-{self.session_id}")

    async def wait_subscribed(self, timeout: float | None = None) -> None:
        """
        Wait until the first snapshot arrives.

        Raises:
            SessionClientError: the server rejected the subscription
            TransportError: the connection could not be established
            asyncio.TimeoutError: timeout elapsed first
        """
        if self._subscribed is None:
            raise RuntimeError("Subscription has not been opened")
        await asyncio.wait_for(asyncio.shield(self._subscribed), timeout)

    async def send(self, message: dict[str, Any]) -> bool:
        """Send one JSON message if the connection is open. Returns whether it was sent."""
        ws = self._ws
        if ws is None or self._state != CONNECTED:
            return False
        try:
            await ws.send(json.dumps(message))
        except ConnectionClosed:
            return False
        return True

    async def unsubscribe(self) -> None:
        await self.send({"action": "unsubscribe"})

    async def close(self) -> None:
        """Close intentionally. Never triggers a reconnect; safe to call repeatedly."""
        if self._closing and self._run_task is None:
            return
        self._closing = True
        if self._state != DISCONNECTED:
            self._state = CLOSING
        self._stop_keepalive()

        ws = self._ws
        if ws is not None:
            try:
                await ws.close(code=1000, reason="Client disconnecting")
            except (ConnectionClosed, OSError) as e:
                logger.debug("Error closing connection", error=str(e))

        task = self._run_task
        self._run_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._ws = None
        self._state = DISCONNECTED
        if self._subscribed is not None and not self._subscribed.done():
            self._fail_pending(TransportError("Subscription closed before the snapshot arrived"))

    # -- internals ------------------------------------------------------

    def _fail_pending(self, error: Exception) -> None:
        if self._subscribed is not None and not self._subscribed.done():
            self._subscribed.set_exception(error)
            # Mark retrieved so an unawaited failure is not reported at GC
            self._subscribed.exception()

    def _stop_keepalive(self) -> None:
        if self._ping_task is not None:
            self._ping_task.cancel()
            self._ping_task = None

    async def _keepalive(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await ws.send(json.dumps({"action": "ping"}))
            except ConnectionClosed:
                return

    async def _run(self) -> None:
        while not self._closing:
            self._state = CONNECTING
            try:
                ws = await self._connector(self.url)
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.warning("Connection attempt failed", url=self.url, error=str(e))
                if not await self._backoff():
                    break
                continue

            self._ws = ws
            self._state = CONNECTED
            self.reconnect_policy.reset()
            logger.info("Connected, subscribing to session", session_id=self.session_id)

            intentional = False
            try:
                await ws.send(json.dumps({"action": "subscribe", "sessionId": self.session_id}))
                self._ping_task = asyncio.create_task(self._keepalive(ws))
                while True:
                    raw = await ws.recv()
                    await self._dispatch(raw)
            except ConnectionClosed as e:
                intentional = _closed_normally(e)
                if not intentional:
                    logger.warning("Connection lost", session_id=self.session_id, close_code=_close_code(e))
            except OSError as e:
                logger.warning("Connection lost", session_id=self.session_id, error=str(e))
            finally:
                self._stop_keepalive()
                self._ws = None

            if self._closing or intentional:
                break
            self._state = DISCONNECTED
            if not await self._backoff():
                break

        self._state = DISCONNECTED

    async def _backoff(self) -> bool:
        """Sleep before the next attempt. Returns False once retries are exhausted."""
        delay = self.reconnect_policy.next_delay()
        if delay is None:
            error = TransportError(
                "Failed to reconnect after multiple attempts", attempts=self.reconnect_policy.attempts
            )
            self._fail_pending(error)
            await _invoke(self.on_error, error)
            return False
        logger.info("Reconnecting", delay_seconds=delay, attempt=self.reconnect_policy.attempts)
        self._state = DISCONNECTED
        await asyncio.sleep(delay)
        return not self._closing

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON message")
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object message")
            return

        message_type = data.get("type")
        if message_type == "subscribed":
            if data.get("combatState") is not None:
                await _invoke(self.on_update, data["combatState"])
            if self._subscribed is not None and not self._subscribed.done():
                self._subscribed.set_result(None)
        elif message_type == "session_update":
            await _invoke(self.on_update, data.get("data"))
        elif message_type == "session_closed":
            await _invoke(self.on_close, data.get("message") or "Session ended")
            self._closing = True
            if self._ws is not None:
                await self._ws.close(code=1000, reason="Session ended")
        elif message_type == "error":
            error = SessionClientError(str(data.get("message", "Unknown error")))
            self._fail_pending(error)
            await _invoke(self.on_error, error)
        elif message_type == "pong":
            pass
        else:
            logger.debug("Unknown message type", message_type=message_type)

        for handler in list(self._handlers):
            await _invoke(handler, data)
