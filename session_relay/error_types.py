"""
Centralized error types and constants for the session relay.

Keeps error categorisation and user-facing wording consistent between the
HTTP surface and the realtime channel.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Validation Errors
    VALIDATION_ERROR = "validation_error"
    INVALID_INPUT = "invalid_input"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_FORMAT = "invalid_format"
    INVALID_COMMAND = "invalid_command"

    # Resource Errors
    RESOURCE_NOT_FOUND = "resource_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_EXPIRED = "session_expired"

    # Storage
    STORE_UNAVAILABLE = "store_unavailable"

    # System
    INTERNAL_ERROR = "internal_error"


def create_standard_error_response(message: str, error_type: ErrorType | None = None) -> dict[str, Any]:
    """
    Create the JSON body returned by the HTTP surface on failure.

    The body always carries an "error" string so browser clients can surface
    it directly.

    Args:
        message: Human-readable error text
        error_type: Optional error category, included for diagnostics

    Returns:
        Error response dictionary
    """
    body: dict[str, Any] = {"error": message}
    if error_type is not None:
        body["error_type"] = error_type.value
        body["timestamp"] = datetime.now(UTC).isoformat()
    return body


def create_websocket_error_response(
    error_type: ErrorType,
    message: str,
    user_friendly: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create a standardized WebSocket error response.

    Args:
        error_type: The type of error
        message: Error message shown to the client
        user_friendly: User-friendly error message (optional)
        details: Additional error details (optional)

    Returns:
        WebSocket error response dictionary
    """
    return {
        "type": "error",
        "error_type": error_type.value,
        "message": message,
        "user_friendly": user_friendly or message,
        "details": details or {},
    }


class ErrorMessages:
    """Common error messages for consistent user experience."""

    # HTTP surface
    SESSION_NOT_FOUND = "Session not found"
    SESSION_EXPIRED = "Session expired"
    NOT_FOUND = "Not found"
    INVALID_REQUEST_BODY = "Invalid request body"
    FAILED_TO_CREATE = "Failed to create session"
    FAILED_TO_GET = "Failed to get session"
    FAILED_TO_UPDATE = "Failed to update session"
    FAILED_TO_DELETE = "Failed to delete session"
    INTERNAL_ERROR = "An internal error occurred"

    # Realtime channel
    SESSION_ID_REQUIRED = "sessionId is required"
    WS_SESSION_NOT_FOUND = "Session not found"
    WS_SESSION_EXPIRED = "Session has expired"
    FAILED_TO_SUBSCRIBE = "Failed to subscribe"
    FAILED_TO_UNSUBSCRIBE = "Failed to unsubscribe"
    INVALID_MESSAGE_FORMAT = "Invalid message format. Expected JSON with 'action' field."
    SESSION_ENDED_BY_HOST = "Session has been ended by the host"
    UNSUBSCRIBED = "Successfully unsubscribed from session"
