"""
Service layer for the session relay.
"""

from .expiry_sweeper import ExpirySweeper
from .session_service import DeliveryResult, FanOutReport, PushTransport, SessionService

__all__ = ["DeliveryResult", "ExpirySweeper", "FanOutReport", "PushTransport", "SessionService"]
