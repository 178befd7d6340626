"""
API routers for the session relay.
"""

from .real_time import realtime_router
from .sessions import session_router

__all__ = ["realtime_router", "session_router"]
