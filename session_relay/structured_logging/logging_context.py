"""
Context management utilities for structured logging.

Binds correlation data (HTTP request or WebSocket connection) into structlog
contextvars so every log line emitted while handling it carries the same ids.
"""

import uuid

from structlog.contextvars import bind_contextvars, clear_contextvars


def bind_request_context(
    correlation_id: str | None = None,
    session_id: str | None = None,
    connection_id: str | None = None,
    request_id: str | None = None,
    **kwargs,
) -> None:
    """
    Bind request context to the current logging context.

    Args:
        correlation_id: Unique correlation ID for the request
        session_id: Relay session ID if available
        connection_id: Realtime connection ID if available
        request_id: Request ID if available
        **kwargs: Additional context variables
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    context_vars = {
        "correlation_id": correlation_id,
        "session_id": session_id,
        "connection_id": connection_id,
        "request_id": request_id,
        **kwargs,
    }

    # Remove None values
    context_vars = {k: v for k, v in context_vars.items() if v is not None}

    bind_contextvars(**context_vars)


def clear_request_context() -> None:
    """Clear the current request context from logging."""
    clear_contextvars()
