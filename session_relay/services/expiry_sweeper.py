"""
Periodic removal of expired session and connection records.

Backends with native expiry return zero from purge_expired(), so running the
sweeper against them is harmless. Reads never depend on a sweep having run.
"""

import asyncio
from collections.abc import Callable

from ..exceptions import StoreUnavailableError
from ..models.session import now_ms
from ..persistence.protocols import ConnectionRegistry, SessionStore
from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)


class ExpirySweeper:
    """Background task purging expired records at a fixed interval."""

    def __init__(
        self,
        store: SessionStore,
        registry: ConnectionRegistry,
        interval_seconds: float = 60.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> tuple[int, int]:
        """Purge both stores once. Returns (sessions_removed, connections_removed)."""
        now = self._clock()
        sessions = await self.store.purge_expired(now)
        connections = await self.registry.purge_expired(now)
        if sessions or connections:
            logger.info("Expired records purged", sessions=sessions, connections=connections)
        return sessions, connections

    async def _run(self) -> None:
        logger.info("Expiry sweeper started", interval_seconds=self.interval_seconds)
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep_once()
            except asyncio.CancelledError:
                logger.info("Expiry sweeper cancelled")
                break
            except StoreUnavailableError as e:
                logger.error("Expiry sweep failed", error=str(e))

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="expiry-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
