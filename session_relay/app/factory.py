"""
FastAPI application factory for the session relay.

This module handles FastAPI app creation, middleware configuration,
and router registration.
"""

from typing import TYPE_CHECKING

from fastapi import FastAPI

from ..api.real_time import realtime_router
from ..api.sessions import session_router
from ..config import get_config
from ..error_handlers import register_error_handlers
from ..middleware.correlation_middleware import CorrelationMiddleware
from ..middleware.cors_middleware import SessionCORSMiddleware
from ..structured_logging.logging_config import get_logger
from .lifespan import lifespan

if TYPE_CHECKING:
    from ..config.models import AppConfig
    from ..persistence.protocols import ConnectionRegistry, SessionStore

logger = get_logger(__name__)


def create_app(
    config: "AppConfig | None" = None,
    store: "SessionStore | None" = None,
    registry: "ConnectionRegistry | None" = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration (loaded from the environment when omitted)
        store: Session store to use instead of the configured backend
        registry: Connection registry to use instead of the configured backend

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    config = config or get_config()

    app = FastAPI(
        title="Session Relay API",
        description="Shared initiative-tracker sessions with real-time viewer updates",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.container = None
    app.state.session_store_override = store
    app.state.connection_registry_override = registry

    logger.info(
        "CORS configuration",
        allow_origins=config.cors.allow_origins,
        allow_methods=config.cors.allow_methods,
        allow_headers=config.cors.allow_headers,
    )

    # Correlation is innermost so request logs carry the id; CORS wraps everything
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        SessionCORSMiddleware,
        allow_origins=config.cors.allow_origins,
        allow_methods=config.cors.allow_methods,
        allow_headers=config.cors.allow_headers,
    )

    register_error_handlers(app)

    app.include_router(session_router)
    app.include_router(realtime_router)

    return app
