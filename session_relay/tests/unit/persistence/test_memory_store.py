"""
Tests for the in-memory session store and connection registry.
"""

import pytest

from session_relay.exceptions import SessionNotFoundError
from session_relay.models.session import SessionRecord
from session_relay.persistence.memory_store import InMemoryConnectionRegistry, InMemorySessionStore
from session_relay.tests.conftest import START_MS, FakeClock


def _session(session_id: str = "s1", expires_in_ms: int = 60_000, state=None) -> SessionRecord:
    return SessionRecord(
        id=session_id,
        state=state if state is not None else {"round": 1},
        created_at=START_MS,
        updated_at=START_MS,
        expires_at=START_MS + expires_in_ms,
    )


class TestInMemorySessionStore:
    """Session document storage."""

    @pytest.mark.asyncio
    async def test_put_then_get(self, session_store: InMemorySessionStore):
        # Setup
        await session_store.put(_session())

        # Execute
        record = await session_store.get("s1")

        # Verify
        assert record.state == {"round": 1}

    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, session_store: InMemorySessionStore):
        with pytest.raises(SessionNotFoundError) as exc_info:
            await session_store.get("missing")

        assert not exc_info.value.expired
        assert exc_info.value.message == "Session not found"

    @pytest.mark.asyncio
    async def test_get_expired_raises_expired_even_before_sweep(
        self, session_store: InMemorySessionStore, fake_clock: FakeClock
    ):
        """Test expired records are hidden on read without waiting for a purge."""
        # Setup
        await session_store.put(_session(expires_in_ms=1000))
        fake_clock.advance(1000)

        # Execute / Verify
        with pytest.raises(SessionNotFoundError) as exc_info:
            await session_store.get("s1")
        assert exc_info.value.expired
        assert exc_info.value.message == "Session expired"
        assert len(session_store) == 1

    @pytest.mark.asyncio
    async def test_update_replaces_state_and_keeps_expiry(self, session_store: InMemorySessionStore):
        await session_store.put(_session())

        updated = await session_store.update("s1", {"round": 2}, updated_at=START_MS + 5)

        assert updated.state == {"round": 2}
        assert updated.updated_at == START_MS + 5
        assert updated.expires_at == START_MS + 60_000
        assert updated.created_at == START_MS

    @pytest.mark.asyncio
    async def test_update_with_new_expiry(self, session_store: InMemorySessionStore):
        await session_store.put(_session())

        updated = await session_store.update("s1", {}, updated_at=START_MS, expires_at=START_MS + 999_999)

        assert updated.expires_at == START_MS + 999_999

    @pytest.mark.asyncio
    async def test_update_missing_does_not_create(self, session_store: InMemorySessionStore):
        """Test update is conditional on existence."""
        with pytest.raises(SessionNotFoundError):
            await session_store.update("ghost", {"round": 1}, updated_at=START_MS)

        assert len(session_store) == 0

    @pytest.mark.asyncio
    async def test_update_expired_raises(self, session_store: InMemorySessionStore, fake_clock: FakeClock):
        await session_store.put(_session(expires_in_ms=10))
        fake_clock.advance(10)

        with pytest.raises(SessionNotFoundError):
            await session_store.update("s1", {"round": 9}, updated_at=fake_clock())

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, session_store: InMemorySessionStore):
        await session_store.put(_session())

        await session_store.delete("s1")
        await session_store.delete("s1")

        with pytest.raises(SessionNotFoundError):
            await session_store.get("s1")

    @pytest.mark.asyncio
    async def test_purge_removes_only_expired(self, session_store: InMemorySessionStore):
        await session_store.put(_session("old", expires_in_ms=10))
        await session_store.put(_session("new", expires_in_ms=100_000))

        removed = await session_store.purge_expired(START_MS + 10)

        assert removed == 1
        assert len(session_store) == 1
        assert (await session_store.get("new")).id == "new"


class TestInMemoryConnectionRegistry:
    """Connection records and the session index."""

    @pytest.mark.asyncio
    async def test_register_creates_unassociated_record(self, connection_registry: InMemoryConnectionRegistry):
        record = await connection_registry.register("c1")

        assert record.session_id is None
        assert record.expires_at == START_MS + 7200 * 1000

    @pytest.mark.asyncio
    async def test_upsert_associates_and_lists(self, connection_registry: InMemoryConnectionRegistry):
        # Setup
        await connection_registry.register("c1")
        await connection_registry.register("c2")

        # Execute
        await connection_registry.upsert("c2", "s1")
        await connection_registry.upsert("c1", "s1")

        # Verify
        assert await connection_registry.list_by_session("s1") == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_resubscribe_moves_connection(self, connection_registry: InMemoryConnectionRegistry):
        """Test one connection is associated with at most one session."""
        await connection_registry.register("c1")
        await connection_registry.upsert("c1", "s1")

        await connection_registry.upsert("c1", "s2")

        assert await connection_registry.list_by_session("s1") == []
        assert await connection_registry.list_by_session("s2") == ["c1"]

    @pytest.mark.asyncio
    async def test_upsert_refreshes_ttl(
        self, connection_registry: InMemoryConnectionRegistry, fake_clock: FakeClock
    ):
        await connection_registry.register("c1")
        fake_clock.advance(seconds=100)

        record = await connection_registry.upsert("c1", "s1")

        assert record.expires_at == fake_clock() + 7200 * 1000
        assert record.subscribed_at == fake_clock()
        assert record.connected_at == START_MS

    @pytest.mark.asyncio
    async def test_touch_refreshes_ttl_and_ping_time(
        self, connection_registry: InMemoryConnectionRegistry, fake_clock: FakeClock
    ):
        await connection_registry.register("c1")
        fake_clock.advance(seconds=30)

        record = await connection_registry.touch("c1")

        assert record is not None
        assert record.last_ping_at == fake_clock()
        assert record.expires_at == fake_clock() + 7200 * 1000

    @pytest.mark.asyncio
    async def test_touch_unknown_returns_none(self, connection_registry: InMemoryConnectionRegistry):
        assert await connection_registry.touch("nobody") is None

    @pytest.mark.asyncio
    async def test_clear_keeps_record(self, connection_registry: InMemoryConnectionRegistry):
        await connection_registry.register("c1")
        await connection_registry.upsert("c1", "s1")

        await connection_registry.clear("c1")

        record = await connection_registry.get("c1")
        assert record is not None
        assert record.session_id is None
        assert await connection_registry.list_by_session("s1") == []

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, connection_registry: InMemoryConnectionRegistry):
        await connection_registry.register("c1")
        await connection_registry.upsert("c1", "s1")

        await connection_registry.remove("c1")
        await connection_registry.remove("c1")

        assert await connection_registry.get("c1") is None
        assert await connection_registry.list_by_session("s1") == []

    @pytest.mark.asyncio
    async def test_expired_connections_not_listed(
        self, connection_registry: InMemoryConnectionRegistry, fake_clock: FakeClock
    ):
        """Test abandoned connections drop out of fan-out after their TTL."""
        # Setup
        await connection_registry.register("c1")
        await connection_registry.upsert("c1", "s1")

        # Execute
        fake_clock.advance(seconds=7200)

        # Verify
        assert await connection_registry.list_by_session("s1") == []
        assert await connection_registry.get("c1") is None
        assert await connection_registry.purge_expired(fake_clock()) == 1
        assert len(connection_registry) == 0

    @pytest.mark.asyncio
    async def test_short_ttl(self, fake_clock: FakeClock):
        registry = InMemoryConnectionRegistry(ttl_seconds=1, clock=fake_clock)
        await registry.register("c1")

        fake_clock.advance(999)
        assert await registry.get("c1") is not None
        fake_clock.advance(1)
        assert await registry.get("c1") is None
