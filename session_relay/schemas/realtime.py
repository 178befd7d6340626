"""
Pydantic schemas for realtime channel messages.

Inbound frames are JSON objects with an "action" field. Outbound frames are
JSON objects with a "type" field.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

VALID_ACTIONS = ("subscribe", "unsubscribe", "ping")


class InboundMessage(BaseModel):
    """Client to server frame."""

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
    )

    action: str = Field(..., min_length=1, description="subscribe, unsubscribe or ping")
    sessionId: str | None = Field(None, description="Target session for subscribe")


class SubscribedMessage(BaseModel):
    type: Literal["subscribed"] = "subscribed"
    sessionId: str
    combatState: Any = None
    expiresAt: str


class SessionUpdateMessage(BaseModel):
    type: Literal["session_update"] = "session_update"
    data: Any = None


class SessionClosedMessage(BaseModel):
    type: Literal["session_closed"] = "session_closed"
    message: str


class UnsubscribedMessage(BaseModel):
    type: Literal["unsubscribed"] = "unsubscribed"
    message: str


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"
