"""
Dependency container for the session relay.

Owns the stores, the realtime gateway, the session service and the expiry
sweeper for one application instance, and wires them together in the
right order.

USAGE:
    # In application startup (lifespan.py):
    container = RelayContainer(config)
    await container.initialize()
    app.state.container = container

    # In route handlers:
    service = request.app.state.container.session_service
"""

from typing import TYPE_CHECKING

from .persistence import build_stores
from .realtime.connection_manager import ConnectionManager
from .realtime.websocket_handler import RealtimeGateway
from .services.expiry_sweeper import ExpirySweeper
from .services.session_service import SessionService
from .structured_logging.logging_config import get_logger

if TYPE_CHECKING:
    from .config.models import AppConfig
    from .persistence.protocols import ConnectionRegistry, SessionStore

logger = get_logger(__name__)


class RelayContainer:
    """
    Service container for one relay process.

    Services are created by initialize(), not the constructor, so a container
    can be built without side effects. Stores passed in explicitly replace the
    configured backend.
    """

    def __init__(
        self,
        config: "AppConfig",
        store: "SessionStore | None" = None,
        registry: "ConnectionRegistry | None" = None,
    ) -> None:
        self.config = config
        self.session_store: SessionStore | None = store
        self.connection_registry: ConnectionRegistry | None = registry

        self.connection_manager: ConnectionManager | None = None
        self.gateway: RealtimeGateway | None = None
        self.session_service: SessionService | None = None
        self.sweeper: ExpirySweeper | None = None

        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("RelayContainer already initialized")
            return

        if self.session_store is None or self.connection_registry is None:
            store, registry = build_stores(self.config.storage, self.config.session)
            self.session_store = self.session_store or store
            self.connection_registry = self.connection_registry or registry

        self.connection_manager = ConnectionManager()
        self.gateway = RealtimeGateway(self.connection_manager, self.connection_registry)
        self.session_service = SessionService(
            self.session_store,
            self.connection_registry,
            push=self.gateway,
            default_lifetime_minutes=self.config.session.default_lifetime_minutes,
            delivery_timeout_seconds=self.config.session.delivery_timeout_seconds,
        )
        # The gateway needs the service for subscribe; the service pushes through the gateway
        self.gateway.session_service = self.session_service

        self.sweeper = ExpirySweeper(
            self.session_store,
            self.connection_registry,
            interval_seconds=self.config.storage.sweep_interval_seconds,
        )
        self.sweeper.start()

        self._initialized = True
        logger.info("RelayContainer initialized", storage_backend=self.config.storage.backend)

    async def shutdown(self) -> None:
        """Stop background work and release store connections."""
        if self.sweeper is not None:
            await self.sweeper.stop()

        for resource in (self.session_store, self.connection_registry):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: shutdown must release every resource
                logger.error("Error closing store", store=type(resource).__name__, error=str(e))

        self._initialized = False
        logger.info("RelayContainer shut down")
