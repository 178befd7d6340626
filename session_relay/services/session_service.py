"""
Session service: CRUD over session documents plus fan-out to viewers.

Every successful update is pushed to each connection the registry lists for
the session. Delivery is best-effort and isolated per connection: a dead
viewer never fails the host's update or blocks delivery to other viewers, and
a stalled one is given up on after the delivery timeout.
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..error_types import ErrorMessages
from ..exceptions import (
    DeliveryFailedError,
    ErrorContext,
    InvalidArgumentError,
    StoreUnavailableError,
)
from ..models.session import MS_PER_MINUTE, SessionRecord, generate_session_id, now_ms
from ..persistence.protocols import ConnectionRegistry, SessionStore
from ..schemas.realtime import SessionClosedMessage, SessionUpdateMessage
from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LIFETIME_MINUTES = 480
DEFAULT_DELIVERY_TIMEOUT_SECONDS = 5.0


class PushTransport(Protocol):
    """Outbound delivery to a single realtime connection."""

    async def send_to_connection(self, connection_id: str, message: dict[str, Any]) -> None:
        """Deliver one message. Raises DeliveryFailedError when the connection is gone."""
        ...


@dataclass(frozen=True)
class DeliveryResult:
    connection_id: str
    delivered: bool
    error: str | None = None


@dataclass
class FanOutReport:
    """One result per targeted connection."""

    session_id: str
    message_type: str
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def delivered(self) -> list[str]:
        return [r.connection_id for r in self.results if r.delivered]

    @property
    def failed(self) -> list[str]:
        return [r.connection_id for r in self.results if not r.delivered]


def _validate_minutes(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(
            f"{field_name} must be a positive integer", ErrorContext(operation=field_name), field=field_name, value=value
        )
    if value <= 0:
        raise InvalidArgumentError(
            f"{field_name} must be greater than zero", ErrorContext(operation=field_name), field=field_name, value=value
        )
    return value


class SessionService:
    """Request-facing session operations and the trigger for fan-out."""

    def __init__(
        self,
        store: SessionStore,
        registry: ConnectionRegistry,
        push: PushTransport,
        clock: Callable[[], int] = now_ms,
        default_lifetime_minutes: int = DEFAULT_LIFETIME_MINUTES,
        delivery_timeout_seconds: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.registry = registry
        self.push = push
        self._clock = clock
        self.default_lifetime_minutes = default_lifetime_minutes
        self.delivery_timeout_seconds = delivery_timeout_seconds
        # Serializes commit + fan-out per session so pushes follow commit order
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    async def create_session(self, state: Any, lifetime_minutes: int | None = None) -> SessionRecord:
        """
        Create a session holding the given opaque state.

        Args:
            state: Any JSON value; stored verbatim
            lifetime_minutes: Minutes until expiry (default 480)

        Raises:
            InvalidArgumentError: lifetime is zero, negative or not an integer
            StoreUnavailableError: the write failed
        """
        minutes = self.default_lifetime_minutes if lifetime_minutes is None else lifetime_minutes
        minutes = _validate_minutes(minutes, "expiresInMinutes")

        now = self._clock()
        session = SessionRecord(
            id=generate_session_id(now),
            state=state,
            created_at=now,
            updated_at=now,
            expires_at=now + minutes * MS_PER_MINUTE,
        )
        await self.store.put(session)
        logger.info("Session created", session_id=session.id, lifetime_minutes=minutes)
        return session

    async def get_session(self, session_id: str) -> SessionRecord:
        """Return the live session or raise SessionNotFoundError."""
        return await self.store.get(session_id)

    async def attach_viewer(
        self,
        session_id: str,
        connection_id: str,
        deliver_snapshot: Callable[[SessionRecord], Awaitable[None]],
    ) -> SessionRecord:
        """
        Associate a connection with a live session and hand it the current snapshot.

        Runs under the session's update lock, so a concurrent update is either
        contained in the snapshot or pushed after it, never both or neither.

        Raises:
            SessionNotFoundError: the session is absent or expired; nothing is registered
            DeliveryFailedError: the snapshot could not be handed over in time
        """
        async with self._lock_for(session_id):
            session = await self.store.get(session_id)
            await self.registry.upsert(connection_id, session_id)
            try:
                await asyncio.wait_for(deliver_snapshot(session), self.delivery_timeout_seconds)
            except TimeoutError as e:
                raise DeliveryFailedError(connection_id, "Snapshot delivery timed out") from e
        logger.info("Viewer attached", session_id=session_id, connection_id=connection_id)
        return session

    async def update_session(
        self,
        session_id: str,
        state: Any,
        extend_minutes: int | None = None,
    ) -> SessionRecord:
        """
        Replace a session's state and push it to every subscribed connection.

        A falsy extend_minutes leaves the expiry untouched; a positive value
        moves it to updated_at + extend_minutes.

        Raises:
            SessionNotFoundError: the session is absent or expired; nothing is written
            InvalidArgumentError: extend_minutes is negative or not an integer
        """
        expires_at: int | None = None
        async with self._lock_for(session_id):
            now = self._clock()
            if extend_minutes:
                expires_at = now + _validate_minutes(extend_minutes, "extendTtlMinutes") * MS_PER_MINUTE
            updated = await self.store.update(session_id, state, updated_at=now, expires_at=expires_at)
            logger.info("Session updated", session_id=session_id, extended=expires_at is not None)

            message = SessionUpdateMessage(data=state).model_dump()
            await self.broadcast(session_id, message)
        return updated

    async def delete_session(self, session_id: str) -> FanOutReport:
        """
        Delete a session and notify its viewers. Idempotent.

        Notified connections have their stale association cleared so they no
        longer appear for the deleted session.
        """
        async with self._lock_for(session_id):
            await self.store.delete(session_id)
            logger.info("Session deleted", session_id=session_id)

            message = SessionClosedMessage(message=ErrorMessages.SESSION_ENDED_BY_HOST).model_dump()
            report = await self.broadcast(session_id, message)

        for connection_id in report.delivered:
            try:
                record = await self.registry.get(connection_id)
                if record is not None and record.session_id == session_id:
                    await self.registry.clear(connection_id)
            except StoreUnavailableError:
                logger.warning("Could not clear association after session close", connection_id=connection_id)
        return report

    async def broadcast(self, session_id: str, message: dict[str, Any]) -> FanOutReport:
        """
        Deliver one message to every connection associated with the session.

        Never raises: registry and delivery failures are logged and reported.
        """
        report = FanOutReport(session_id=session_id, message_type=str(message.get("type")))
        try:
            connection_ids = await self.registry.list_by_session(session_id)
        except StoreUnavailableError as e:
            logger.error("Fan-out skipped, registry unavailable", session_id=session_id, error=str(e))
            return report

        if not connection_ids:
            return report

        report.results = list(
            await asyncio.gather(*(self._deliver(connection_id, message) for connection_id in connection_ids))
        )
        logger.debug(
            "Fan-out complete",
            session_id=session_id,
            message_type=report.message_type,
            delivered=len(report.delivered),
            failed=len(report.failed),
        )
        return report

    async def _deliver(self, connection_id: str, message: dict[str, Any]) -> DeliveryResult:
        try:
            await asyncio.wait_for(self.push.send_to_connection(connection_id, message), self.delivery_timeout_seconds)
        except TimeoutError:
            logger.warning(
                "Delivery timed out, viewer not draining",
                connection_id=connection_id,
                timeout_seconds=self.delivery_timeout_seconds,
            )
            return DeliveryResult(connection_id, delivered=False, error="Delivery timed out")
        except DeliveryFailedError as e:
            return DeliveryResult(connection_id, delivered=False, error=e.message)
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: one viewer's failure must not abort the others
            logger.warning(
                "Unexpected delivery error",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryResult(connection_id, delivered=False, error=str(e))
        return DeliveryResult(connection_id, delivered=True)
