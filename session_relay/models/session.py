"""
Session and connection records held by the backing stores.

Timestamps are epoch milliseconds throughout; conversion to ISO strings only
happens at the wire boundary.
"""

import secrets
import string
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_BASE36 = string.digits + string.ascii_lowercase

MS_PER_MINUTE = 60_000


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso_z(epoch_ms: int) -> str:
    """Render epoch milliseconds as ISO 8601 UTC with a 'Z' suffix."""
    return (
        datetime.fromtimestamp(epoch_ms / 1000, tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_id(epoch_ms: int | None = None) -> str:
    """
    Generate a short, URL-safe share code.

    A base-36 millisecond timestamp followed by five random base-36
    characters; ids are never reused across the timestamp space.
    """
    timestamp = now_ms() if epoch_ms is None else epoch_ms
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return _to_base36(timestamp) + suffix


class SessionRecord(BaseModel):
    """One shared initiative-tracker instance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque session id")
    state: Any = Field(default=None, description="Opaque JSON state, stored verbatim")
    created_at: int = Field(..., description="Creation time, epoch ms")
    updated_at: int = Field(..., description="Last update time, epoch ms")
    expires_at: int = Field(..., description="Absolute expiry, epoch ms")
    active: str = Field(default="true", description="String flag kept for listing")

    def is_expired(self, at_ms: int) -> bool:
        return self.expires_at <= at_ms


class ConnectionRecord(BaseModel):
    """One open realtime channel and the session it watches."""

    model_config = ConfigDict(validate_assignment=True)

    connection_id: str = Field(..., min_length=1)
    session_id: str | None = None
    connected_at: int
    subscribed_at: int | None = None
    last_ping_at: int | None = None
    expires_at: int

    def is_expired(self, at_ms: int) -> bool:
        return self.expires_at <= at_ms
