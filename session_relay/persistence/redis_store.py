"""
Redis implementations of the session store and connection registry.

Session and connection records are hashes that carry their own absolute
expiry via PEXPIREAT, so Redis reclaims abandoned records natively. The
existence-conditional session update runs as a Lua script and is therefore
atomic on the server.

Key layout:
    {sessions_table}:{session_id}                  hash
    {connections_table}:{connection_id}            hash
    {connections_table}:by-session:{session_id}    set of connection ids
"""

import json
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..exceptions import ErrorContext, SessionNotFoundError, StoreUnavailableError
from ..models.session import ConnectionRecord, SessionRecord, now_ms
from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONNECTION_TTL_SECONDS = 7200

# KEYS[1] session key; ARGV: state json, updated_at, new expires_at or "", now
LUA_UPDATE_IF_EXISTS = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return false
end
local expires_at = tonumber(redis.call('HGET', KEYS[1], 'expires_at'))
if expires_at and expires_at <= tonumber(ARGV[4]) then
    return false
end
redis.call('HSET', KEYS[1], 'state', ARGV[1], 'updated_at', ARGV[2])
if ARGV[3] ~= '' then
    redis.call('HSET', KEYS[1], 'expires_at', ARGV[3])
    redis.call('PEXPIREAT', KEYS[1], ARGV[3])
end
return redis.call('HGETALL', KEYS[1])
"""


def create_redis_client(redis_url: str) -> aioredis.Redis:
    """Create a lazily-connecting client returning str responses."""
    return aioredis.Redis.from_url(redis_url, decode_responses=True)


def _pairs_to_dict(flat: list[Any]) -> dict[str, str]:
    return {str(flat[i]): flat[i + 1] for i in range(0, len(flat), 2)}


def _optional_int(value: str | None) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


class RedisSessionStore:
    """SessionStore backed by Redis hashes with native expiry."""

    def __init__(
        self,
        client: aioredis.Redis,
        table: str = "imk-initiative-sessions",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._redis = client
        self._table = table
        self._clock = clock
        self._update_script = client.register_script(LUA_UPDATE_IF_EXISTS)

    def _key(self, session_id: str) -> str:
        return f"{self._table}:{session_id}"

    def _unavailable(self, operation: str, session_id: str, error: Exception) -> StoreUnavailableError:
        return StoreUnavailableError(
            f"Session store {operation} failed: {error}",
            ErrorContext(session_id=session_id, operation=operation),
            operation=operation,
            table=self._table,
        )

    @staticmethod
    def _to_mapping(session: SessionRecord) -> dict[str, str]:
        return {
            "id": session.id,
            "state": json.dumps(session.state),
            "created_at": str(session.created_at),
            "updated_at": str(session.updated_at),
            "expires_at": str(session.expires_at),
            "active": session.active,
        }

    @staticmethod
    def _from_mapping(data: dict[str, str]) -> SessionRecord:
        return SessionRecord(
            id=data["id"],
            state=json.loads(data.get("state") or "null"),
            created_at=int(data["created_at"]),
            updated_at=int(data["updated_at"]),
            expires_at=int(data["expires_at"]),
            active=data.get("active", "true"),
        )

    async def put(self, session: SessionRecord) -> None:
        key = self._key(session.id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=self._to_mapping(session))
                pipe.pexpireat(key, session.expires_at)
                await pipe.execute()
        except RedisError as e:
            raise self._unavailable("put", session.id, e) from e

    async def get(self, session_id: str) -> SessionRecord:
        try:
            data = await self._redis.hgetall(self._key(session_id))
        except RedisError as e:
            raise self._unavailable("get", session_id, e) from e
        if not data:
            raise SessionNotFoundError(session_id, ErrorContext(session_id=session_id, operation="get"))
        record = self._from_mapping(data)
        # Key expiry is lazy on replicas; filter on read as well
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
        try:
            result = await self._update_script(
                keys=[self._key(session_id)],
                args=[
                    json.dumps(state),
                    str(updated_at),
                    "" if expires_at is None else str(expires_at),
                    str(self._clock()),
                ],
            )
        except RedisError as e:
            raise self._unavailable("update", session_id, e) from e
        if not result:
            raise SessionNotFoundError(session_id, ErrorContext(session_id=session_id, operation="update"))
        return self._from_mapping(_pairs_to_dict(result))

    async def delete(self, session_id: str) -> None:
        try:
            await self._redis.delete(self._key(session_id))
        except RedisError as e:
            raise self._unavailable("delete", session_id, e) from e

    async def purge_expired(self, now: int) -> int:
        # Redis expires keys natively
        return 0

    async def close(self) -> None:
        await self._redis.aclose()


class RedisConnectionRegistry:
    """ConnectionRegistry backed by Redis hashes plus a per-session index set."""

    def __init__(
        self,
        client: aioredis.Redis,
        table: str = "imk-websocket-connections",
        ttl_seconds: int = DEFAULT_CONNECTION_TTL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._redis = client
        self._table = table
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock

    def _key(self, connection_id: str) -> str:
        return f"{self._table}:{connection_id}"

    def _index_key(self, session_id: str) -> str:
        return f"{self._table}:by-session:{session_id}"

    def _unavailable(self, operation: str, connection_id: str, error: Exception) -> StoreUnavailableError:
        return StoreUnavailableError(
            f"Connection registry {operation} failed: {error}",
            ErrorContext(connection_id=connection_id, operation=operation),
            operation=operation,
            table=self._table,
        )

    @staticmethod
    def _from_mapping(data: dict[str, str]) -> ConnectionRecord:
        return ConnectionRecord(
            connection_id=data["connection_id"],
            session_id=data.get("session_id") or None,
            connected_at=int(data["connected_at"]),
            subscribed_at=_optional_int(data.get("subscribed_at")),
            last_ping_at=_optional_int(data.get("last_ping_at")),
            expires_at=int(data["expires_at"]),
        )

    async def register(self, connection_id: str) -> ConnectionRecord:
        now = self._clock()
        record = ConnectionRecord(connection_id=connection_id, connected_at=now, expires_at=now + self._ttl_ms)
        key = self._key(connection_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(
                    key,
                    mapping={
                        "connection_id": connection_id,
                        "session_id": "",
                        "connected_at": str(now),
                        "expires_at": str(record.expires_at),
                    },
                )
                pipe.pexpireat(key, record.expires_at)
                await pipe.execute()
        except RedisError as e:
            raise self._unavailable("register", connection_id, e) from e
        return record

    async def upsert(self, connection_id: str, session_id: str) -> ConnectionRecord:
        now = self._clock()
        expires_at = now + self._ttl_ms
        key = self._key(connection_id)
        try:
            previous = await self._redis.hgetall(key)
            old_session = previous.get("session_id") or None
            async with self._redis.pipeline(transaction=True) as pipe:
                if old_session and old_session != session_id:
                    pipe.srem(self._index_key(old_session), connection_id)
                pipe.hset(
                    key,
                    mapping={
                        "connection_id": connection_id,
                        "session_id": session_id,
                        "connected_at": previous.get("connected_at") or str(now),
                        "subscribed_at": str(now),
                        "expires_at": str(expires_at),
                    },
                )
                pipe.pexpireat(key, expires_at)
                pipe.sadd(self._index_key(session_id), connection_id)
                pipe.pexpire(self._index_key(session_id), self._ttl_ms)
                await pipe.execute()
            data = await self._redis.hgetall(key)
        except RedisError as e:
            raise self._unavailable("upsert", connection_id, e) from e
        return self._from_mapping(data)

    async def touch(self, connection_id: str) -> ConnectionRecord | None:
        now = self._clock()
        expires_at = now + self._ttl_ms
        key = self._key(connection_id)
        try:
            data = await self._redis.hgetall(key)
            if not data:
                return None
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping={"last_ping_at": str(now), "expires_at": str(expires_at)})
                pipe.pexpireat(key, expires_at)
                if data.get("session_id"):
                    pipe.pexpire(self._index_key(data["session_id"]), self._ttl_ms)
                await pipe.execute()
        except RedisError as e:
            raise self._unavailable("touch", connection_id, e) from e
        data.update({"last_ping_at": str(now), "expires_at": str(expires_at)})
        return self._from_mapping(data)

    async def clear(self, connection_id: str) -> None:
        key = self._key(connection_id)
        try:
            session_id = await self._redis.hget(key, "session_id")
            if not session_id:
                return
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.srem(self._index_key(session_id), connection_id)
                pipe.hset(key, "session_id", "")
                await pipe.execute()
        except RedisError as e:
            raise self._unavailable("clear", connection_id, e) from e

    async def remove(self, connection_id: str) -> None:
        key = self._key(connection_id)
        try:
            session_id = await self._redis.hget(key, "session_id")
            async with self._redis.pipeline(transaction=True) as pipe:
                if session_id:
                    pipe.srem(self._index_key(session_id), connection_id)
                pipe.delete(key)
                await pipe.execute()
        except RedisError as e:
            raise self._unavailable("remove", connection_id, e) from e

    async def get(self, connection_id: str) -> ConnectionRecord | None:
        try:
            data = await self._redis.hgetall(self._key(connection_id))
        except RedisError as e:
            raise self._unavailable("get", connection_id, e) from e
        if not data:
            return None
        record = self._from_mapping(data)
        if record.is_expired(self._clock()):
            return None
        return record

    async def list_by_session(self, session_id: str) -> list[str]:
        try:
            members = sorted(await self._redis.smembers(self._index_key(session_id)))
            if not members:
                return []
            async with self._redis.pipeline(transaction=False) as pipe:
                for connection_id in members:
                    pipe.hget(self._key(connection_id), "session_id")
                current = await pipe.execute()
        except RedisError as e:
            raise self._unavailable("list_by_session", session_id, e) from e
        # Index entries outlive their hashes until the set itself expires
        return [cid for cid, sid in zip(members, current, strict=True) if sid == session_id]

    async def purge_expired(self, now: int) -> int:
        return 0

    async def close(self) -> None:
        await self._redis.aclose()
