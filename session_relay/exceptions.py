"""
Exception hierarchy for the session relay.

Each error carries structured context and logs itself once on construction.
Expected conditions (an unknown session, a dead viewer socket) log below
error level so they do not drown out real failures.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .structured_logging.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information for error reporting and debugging."""

    session_id: str | None = None
    connection_id: str | None = None
    operation: str | None = None
    request_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "session_id": self.session_id,
            "connection_id": self.connection_id,
            "operation": self.operation,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class RelayError(Exception):
    """
    Base exception for all session relay errors.

    Provides structured error handling with context and metadata.
    """

    log_level = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize relay error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: User-facing error message
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with structured context."""
        log_method = getattr(logger, self.log_level, logger.error)
        log_method(
            "Relay error occurred",
            error_type=self.__class__.__name__,
            error_message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )


class SessionNotFoundError(RelayError):
    """A session is absent, deleted, or past its expiry."""

    log_level = "info"

    NOT_FOUND = "not_found"
    EXPIRED = "expired"

    def __init__(
        self,
        session_id: str,
        context: ErrorContext | None = None,
        reason: str = NOT_FOUND,
        **kwargs,
    ):
        message = "Session expired" if reason == self.EXPIRED else "Session not found"
        context = context or ErrorContext(session_id=session_id)
        super().__init__(message, context, **kwargs)
        self.session_id = session_id
        self.reason = reason
        self.details["session_id"] = session_id
        self.details["reason"] = reason

    @property
    def expired(self) -> bool:
        return self.reason == self.EXPIRED


class InvalidArgumentError(RelayError):
    """A caller-supplied value is out of range."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        field: str | None = None,
        value: Any | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.field = field
        self.value = value
        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class StoreUnavailableError(RelayError):
    """The backing store could not complete an operation."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        operation: str = "unknown",
        table: str | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.operation = operation
        self.table = table
        self.details["operation"] = operation
        if table:
            self.details["table"] = table


class DeliveryFailedError(RelayError):
    """A push to one connection failed. Always non-fatal to the caller."""

    log_level = "debug"

    def __init__(self, connection_id: str, message: str = "Delivery failed", context: ErrorContext | None = None, **kwargs):
        context = context or ErrorContext(connection_id=connection_id)
        super().__init__(message, context, **kwargs)
        self.connection_id = connection_id
        self.details["connection_id"] = connection_id


class TransportError(RelayError):
    """Persistent-connection failure observed by the client library."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        attempts: int | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.attempts = attempts
        if attempts is not None:
            self.details["attempts"] = attempts
