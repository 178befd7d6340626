"""
Record models for the session relay.

This package contains the records persisted by the stores:
- SessionRecord (shared tracker state with absolute expiry)
- ConnectionRecord (realtime connection and its session association)
"""

from .session import (
    MS_PER_MINUTE,
    ConnectionRecord,
    SessionRecord,
    generate_session_id,
    ms_to_iso_z,
    now_ms,
)

__all__ = [
    "MS_PER_MINUTE",
    "ConnectionRecord",
    "SessionRecord",
    "generate_session_id",
    "ms_to_iso_z",
    "now_ms",
]
