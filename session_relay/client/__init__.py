"""
Client library for pages that host or view a live session.
"""

from .http_client import SessionApiClient, SessionClientError
from .live_client import LiveSessionClient
from .live_connection import SessionSubscription
from .reconnect import ReconnectPolicy

__all__ = [
    "LiveSessionClient",
    "ReconnectPolicy",
    "SessionApiClient",
    "SessionClientError",
    "SessionSubscription",
]
