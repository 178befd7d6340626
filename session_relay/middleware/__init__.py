"""
Middleware package for the session relay.

Pure ASGI middleware for request correlation and CORS.
"""

from .correlation_middleware import CorrelationMiddleware
from .cors_middleware import SessionCORSMiddleware

__all__ = ["CorrelationMiddleware", "SessionCORSMiddleware"]
