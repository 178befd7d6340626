"""
Persistence layer for the session relay.

Exposes the storage protocols and builds the configured backend pair.
"""

from collections.abc import Callable

from ..config.models import SessionConfig, StorageConfig
from ..models.session import now_ms
from ..structured_logging.logging_config import get_logger
from .memory_store import InMemoryConnectionRegistry, InMemorySessionStore
from .protocols import ConnectionRegistry, SessionStore

logger = get_logger(__name__)

__all__ = [
    "ConnectionRegistry",
    "InMemoryConnectionRegistry",
    "InMemorySessionStore",
    "SessionStore",
    "build_stores",
]


def build_stores(
    storage: StorageConfig,
    session: SessionConfig,
    clock: Callable[[], int] = now_ms,
) -> tuple[SessionStore, ConnectionRegistry]:
    """
    Build the session store and connection registry for the configured backend.

    Args:
        storage: Backend selection, URL and table names
        session: Connection TTL
        clock: Epoch-ms time source shared by both stores

    Returns:
        (session_store, connection_registry)
    """
    if storage.backend == "redis":
        from .redis_store import RedisConnectionRegistry, RedisSessionStore, create_redis_client

        client = create_redis_client(storage.redis_url)
        logger.info(
            "Using Redis storage backend",
            sessions_table=storage.sessions_table,
            connections_table=storage.connections_table,
        )
        return (
            RedisSessionStore(client, storage.sessions_table, clock=clock),
            RedisConnectionRegistry(
                client, storage.connections_table, ttl_seconds=session.connection_ttl_seconds, clock=clock
            ),
        )

    logger.info("Using in-memory storage backend")
    return (
        InMemorySessionStore(clock=clock),
        InMemoryConnectionRegistry(ttl_seconds=session.connection_ttl_seconds, clock=clock),
    )
