"""Application lifecycle management for the session relay.

Builds the RelayContainer on startup and tears it down on shutdown. Stores
injected through create_app() are picked up from app.state.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import get_config
from ..container import RelayContainer
from ..structured_logging.logging_config import get_logger

logger = get_logger("session_relay.lifespan")

__all__ = ["lifespan"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config = getattr(app.state, "config", None) or get_config()
    container = RelayContainer(
        config,
        store=getattr(app.state, "session_store_override", None),
        registry=getattr(app.state, "connection_registry_override", None),
    )

    logger.info("Starting session relay", storage_backend=config.storage.backend)
    await container.initialize()
    app.state.container = container
    logger.info("Session relay started")

    try:
        yield
    finally:
        logger.info("Shutting down session relay")
        try:
            await container.shutdown()
        except asyncio.CancelledError:
            logger.warning("Shutdown interrupted")
            raise
        app.state.container = None
