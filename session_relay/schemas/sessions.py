"""
Pydantic schemas for the session HTTP surface.

Request bodies accept the state under either "state" or the historical
"combatState" key. The state itself is never validated.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CreateSessionRequest(BaseModel):
    """Body of POST /sessions."""

    model_config = ConfigDict(extra="ignore")

    state: Any = Field(
        default=None,
        validation_alias=AliasChoices("state", "combatState"),
        description="Opaque tracker state",
    )
    expires_in_minutes: int | None = Field(
        default=None,
        validation_alias=AliasChoices("expiresInMinutes", "expires_in_minutes"),
        description="Session lifetime in minutes (default 480)",
    )


class UpdateSessionRequest(BaseModel):
    """Body of PUT /sessions/{session_id}."""

    model_config = ConfigDict(extra="ignore")

    state: Any = Field(
        default=None,
        validation_alias=AliasChoices("state", "combatState"),
        description="Replacement tracker state",
    )
    extend_ttl_minutes: int | None = Field(
        default=None,
        validation_alias=AliasChoices("extendTtlMinutes", "extend_ttl_minutes"),
        description="Push the expiry this many minutes past the update time",
    )


class CreateSessionResponse(BaseModel):
    sessionId: str
    expiresAt: str
    message: str = "Session created successfully"


class SessionResponse(BaseModel):
    """Full session snapshot returned by GET."""

    sessionId: str
    state: Any = None
    combatState: Any = None
    createdAt: int
    updatedAt: int
    expiresAt: str


class UpdateSessionResponse(BaseModel):
    message: str = "Session updated successfully"
    updatedAt: int


class DeleteSessionResponse(BaseModel):
    message: str = "Session deleted successfully"


class HealthResponse(BaseModel):
    status: str = "ok"
    storage_backend: str
    active_connections: int
