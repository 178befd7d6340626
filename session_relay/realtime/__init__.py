"""
Realtime gateway package: WebSocket connections, lifecycles and push delivery.
"""

from .connection_manager import ConnectionManager
from .connection_state_machine import ConnectionLifecycle
from .websocket_handler import RealtimeGateway

__all__ = ["ConnectionLifecycle", "ConnectionManager", "RealtimeGateway"]
