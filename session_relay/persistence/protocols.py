"""
Storage protocols for the session relay persistence layer.

Explicit typing.Protocol definitions for the two shared stores. The session
service and the realtime gateway depend on these, never on a backend class.
"""

# pylint: disable=unnecessary-ellipsis  # Reason: Protocol method bodies use ... per typing.Protocol convention

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from session_relay.models.session import ConnectionRecord, SessionRecord


class SessionStore(Protocol):
    """
    Protocol for session document storage.

    Implemented by InMemorySessionStore and RedisSessionStore.
    """

    async def put(self, session: SessionRecord) -> None:
        """Insert or fully overwrite a session. Raises StoreUnavailableError."""
        ...

    async def get(self, session_id: str) -> SessionRecord:
        """Return the live session or raise SessionNotFoundError (reason not_found or expired)."""
        ...

    async def update(
        self,
        session_id: str,
        state: Any,
        updated_at: int,
        expires_at: int | None = None,
    ) -> SessionRecord:
        """Atomically update an existing live session; raise SessionNotFoundError and write nothing otherwise."""
        ...

    async def delete(self, session_id: str) -> None:
        """Remove a session. Absence is not an error."""
        ...

    async def purge_expired(self, now: int) -> int:
        """Physically remove expired sessions and return how many were removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


class ConnectionRegistry(Protocol):
    """
    Protocol for connection record storage with a by-session index.

    Implemented by InMemoryConnectionRegistry and RedisConnectionRegistry.
    """

    async def register(self, connection_id: str) -> ConnectionRecord:
        """Create a connection record with no session association."""
        ...

    async def upsert(self, connection_id: str, session_id: str) -> ConnectionRecord:
        """Set or replace the session association and refresh the TTL."""
        ...

    async def touch(self, connection_id: str) -> ConnectionRecord | None:
        """Refresh the TTL after a keepalive ping. Returns None for unknown ids."""
        ...

    async def clear(self, connection_id: str) -> None:
        """Drop the session association but keep the record."""
        ...

    async def remove(self, connection_id: str) -> None:
        """Delete the connection record. Idempotent."""
        ...

    async def get(self, connection_id: str) -> ConnectionRecord | None:
        """Return the live record or None."""
        ...

    async def list_by_session(self, session_id: str) -> list[str]:
        """Return ids of live connections currently associated with the session."""
        ...

    async def purge_expired(self, now: int) -> int:
        """Physically remove expired connection records and return how many were removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
