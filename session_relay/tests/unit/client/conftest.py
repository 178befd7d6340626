"""
Scripted stand-ins for a websockets client connection.
"""

import asyncio
import json
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close


class FakeConnection:
    """In-memory connection: the test pushes inbound frames, the client's sends are recorded."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    def push(self, message: dict[str, Any]) -> None:
        self.inbox.put_nowait(json.dumps(message))

    def close_from_server(self, code: int, reason: str = "") -> None:
        """Simulate a clean close handshake started by the server (1000 or 1001)."""
        frame = Close(code, reason)
        self.inbox.put_nowait(ConnectionClosedOK(frame, frame, True))

    def drop(self) -> None:
        """Simulate an abnormal connection loss."""
        self.inbox.put_nowait(ConnectionClosedError(None, None))

    async def send(self, raw: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(raw))

    async def recv(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self.inbox.put_nowait(ConnectionClosedOK(None, None))

    def actions(self) -> list[str]:
        return [message.get("action") for message in self.sent]


class FakeConnector:
    """Hands out queued connections, or raises queued errors, one per connect attempt."""

    def __init__(self) -> None:
        self.outcomes: list[FakeConnection | Exception] = []
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []

    def queue(self, outcome: FakeConnection | Exception | None = None) -> FakeConnection | Exception:
        outcome = outcome if outcome is not None else FakeConnection()
        self.outcomes.append(outcome)
        return outcome

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        if not self.outcomes:
            raise OSError("connection refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        self.connections.append(outcome)
        return outcome


async def eventually(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
