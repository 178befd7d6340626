"""
Test configuration and fixtures for the session relay test suite.

Environment variables are set before any session_relay import so module-level
config loading sees the test values.
"""

import os
from collections.abc import Generator
from typing import Any

import pytest

os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("LOGGING_LEVEL", "WARNING")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("SERVER_HOST", "127.0.0.1")
os.environ.setdefault("SERVER_PORT", "8080")

# Imports must come after environment variables to prevent config loading failures
from session_relay.config import reset_config  # noqa: E402
from session_relay.exceptions import DeliveryFailedError  # noqa: E402
from session_relay.persistence.memory_store import InMemoryConnectionRegistry, InMemorySessionStore  # noqa: E402
from session_relay.services.session_service import SessionService  # noqa: E402

START_MS = 1_700_000_000_000


class FakeClock:
    """Controllable epoch-ms clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, *, seconds: int = 0, minutes: int = 0) -> int:
        self.now += ms + seconds * 1000 + minutes * 60_000
        return self.now


class RecordingPush:
    """Push transport that records deliveries and fails for chosen connections."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.dead: set[str] = set()

    async def send_to_connection(self, connection_id: str, message: dict[str, Any]) -> None:
        if connection_id in self.dead:
            raise DeliveryFailedError(connection_id, "Connection gone")
        self.sent.append((connection_id, message))

    def messages_for(self, connection_id: str) -> list[dict[str, Any]]:
        return [message for cid, message in self.sent if cid == connection_id]


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset config singleton before and after each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store(fake_clock: FakeClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=fake_clock)


@pytest.fixture
def connection_registry(fake_clock: FakeClock) -> InMemoryConnectionRegistry:
    return InMemoryConnectionRegistry(ttl_seconds=7200, clock=fake_clock)


@pytest.fixture
def recording_push() -> RecordingPush:
    return RecordingPush()


@pytest.fixture
def session_service(
    session_store: InMemorySessionStore,
    connection_registry: InMemoryConnectionRegistry,
    recording_push: RecordingPush,
    fake_clock: FakeClock,
) -> SessionService:
    return SessionService(session_store, connection_registry, push=recording_push, clock=fake_clock)
