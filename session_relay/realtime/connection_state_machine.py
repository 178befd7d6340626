"""
Per-connection lifecycle state machine for the realtime gateway.

States:
- connected: transport open, no session association
- subscribed: receiving pushes for one session
- disconnected: terminal, record removed

Transitions:
- connected -> subscribed: subscribe
- subscribed -> subscribed: subscribe (switch session)
- subscribed -> connected: unsubscribe
- connected -> connected: unsubscribe (no-op, keeps unsubscribe idempotent)
- connected | subscribed -> disconnected: disconnect
"""

from typing import Any

from statemachine import State, StateMachine

from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionLifecycle(StateMachine):
    """Lifecycle of one realtime connection."""

    connected = State("Connected", initial=True)
    subscribed = State("Subscribed")
    disconnected = State("Disconnected", final=True)

    subscribe = connected.to(subscribed) | subscribed.to(subscribed)
    unsubscribe = subscribed.to(connected) | connected.to(connected)
    disconnect = connected.to(disconnected) | subscribed.to(disconnected)

    def __init__(self, connection_id: str):
        # Set attributes BEFORE super().__init__() because on_enter_state is called during init
        self.connection_id = connection_id
        self.session_id: str | None = None
        self.subscriptions = 0

        super().__init__()

    def on_enter_state(self, state: State, event=None, **kwargs) -> None:
        logger.debug(
            "Connection state transition",
            connection_id=self.connection_id,
            trigger_event=str(event) if event else "initial",
            to_state=state.id,
            subscribed_session=self.session_id,
        )

    def on_subscribe(self, session_id: str) -> None:
        self.session_id = session_id
        self.subscriptions += 1

    def on_unsubscribe(self) -> None:
        self.session_id = None

    def on_disconnect(self) -> None:
        self.session_id = None

    @property
    def is_subscribed(self) -> bool:
        return self.subscribed.is_active

    @property
    def is_closed(self) -> bool:
        return self.disconnected.is_active

    def get_stats(self) -> dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "current_state": self.current_state_value,
            "session_id": self.session_id,
            "subscriptions": self.subscriptions,
        }
