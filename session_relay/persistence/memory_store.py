"""
In-process implementations of the session store and connection registry.

Used for development and tests, and for single-process deployments. Expired
records are filtered on every read; physical removal is left to the expiry
sweeper calling purge_expired().
"""

import asyncio
from collections.abc import Callable
from typing import Any

from ..exceptions import ErrorContext, SessionNotFoundError
from ..models.session import ConnectionRecord, SessionRecord, now_ms
from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONNECTION_TTL_SECONDS = 7200


class InMemorySessionStore:
    """Dict-backed SessionStore guarded by a single asyncio lock."""

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def put(self, session: SessionRecord) -> None:
        async with self._lock:
            self._sessions[session.id] = session
        logger.debug("Session stored", session_id=session.id, expires_at=session.expires_at)

    async def get(self, session_id: str) -> SessionRecord:
        record = self._sessions.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id, ErrorContext(session_id=session_id, operation="get"))
        if record.is_expired(self._clock()):
            raise SessionNotFoundError(
                session_id,
                ErrorContext(session_id=session_id, operation="get"),
                reason=SessionNotFoundError.EXPIRED,
            )
        return record

    async def update(
        self,
        session_id: str,
        state: Any,
        updated_at: int,
        expires_at: int | None = None,
    ) -> SessionRecord:
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None or record.is_expired(self._clock()):
                raise SessionNotFoundError(session_id, ErrorContext(session_id=session_id, operation="update"))
            changes: dict[str, Any] = {"state": state, "updated_at": updated_at}
            if expires_at is not None:
                changes["expires_at"] = expires_at
            updated = record.model_copy(update=changes)
            self._sessions[session_id] = updated
        return updated

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def purge_expired(self, now: int) -> int:
        async with self._lock:
            expired = [sid for sid, record in self._sessions.items() if record.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    async def close(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


class InMemoryConnectionRegistry:
    """
    Dict-backed ConnectionRegistry.

    Maintains a secondary index from session id to connection ids so fan-out
    never scans every connection.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_CONNECTION_TTL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock
        self._connections: dict[str, ConnectionRecord] = {}
        self._by_session: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    def _unindex(self, record: ConnectionRecord) -> None:
        if record.session_id is None:
            return
        members = self._by_session.get(record.session_id)
        if members is None:
            return
        members.discard(record.connection_id)
        if not members:
            del self._by_session[record.session_id]

    async def register(self, connection_id: str) -> ConnectionRecord:
        now = self._clock()
        record = ConnectionRecord(connection_id=connection_id, connected_at=now, expires_at=now + self._ttl_ms)
        async with self._lock:
            previous = self._connections.get(connection_id)
            if previous is not None:
                self._unindex(previous)
            self._connections[connection_id] = record
        return record

    async def upsert(self, connection_id: str, session_id: str) -> ConnectionRecord:
        now = self._clock()
        async with self._lock:
            previous = self._connections.get(connection_id)
            if previous is None:
                previous = ConnectionRecord(connection_id=connection_id, connected_at=now, expires_at=now)
            else:
                self._unindex(previous)
            record = previous.model_copy(
                update={"session_id": session_id, "subscribed_at": now, "expires_at": now + self._ttl_ms}
            )
            self._connections[connection_id] = record
            self._by_session.setdefault(session_id, set()).add(connection_id)
        return record

    async def touch(self, connection_id: str) -> ConnectionRecord | None:
        now = self._clock()
        async with self._lock:
            record = self._connections.get(connection_id)
            if record is None:
                return None
            record = record.model_copy(update={"last_ping_at": now, "expires_at": now + self._ttl_ms})
            self._connections[connection_id] = record
        return record

    async def clear(self, connection_id: str) -> None:
        async with self._lock:
            record = self._connections.get(connection_id)
            if record is None or record.session_id is None:
                return
            self._unindex(record)
            self._connections[connection_id] = record.model_copy(update={"session_id": None})

    async def remove(self, connection_id: str) -> None:
        async with self._lock:
            record = self._connections.pop(connection_id, None)
            if record is not None:
                self._unindex(record)

    async def get(self, connection_id: str) -> ConnectionRecord | None:
        record = self._connections.get(connection_id)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def list_by_session(self, session_id: str) -> list[str]:
        now = self._clock()
        live = []
        for connection_id in self._by_session.get(session_id, ()):
            record = self._connections.get(connection_id)
            if record is not None and record.session_id == session_id and not record.is_expired(now):
                live.append(connection_id)
        return sorted(live)

    async def purge_expired(self, now: int) -> int:
        async with self._lock:
            expired = [record for record in self._connections.values() if record.is_expired(now)]
            for record in expired:
                del self._connections[record.connection_id]
                self._unindex(record)
        return len(expired)

    async def close(self) -> None:
        self._connections.clear()
        self._by_session.clear()

    def __len__(self) -> int:
        return len(self._connections)
