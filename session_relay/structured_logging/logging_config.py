"""
Structlog-based logging configuration for the session relay.

This is the main entry point for the logging system. Application code obtains
loggers through get_logger() and never calls structlog.get_logger() directly.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

from .logging_context import bind_request_context as _bind_request_context
from .logging_context import clear_request_context as _clear_request_context
from .logging_processors import sanitize_sensitive_data, summarize_state_payloads

# Re-export context helpers so callers need a single import path
bind_request_context = _bind_request_context
clear_request_context = _clear_request_context

# NOTE: Infrastructure code in this module uses structlog.get_logger() directly
# to avoid recursion during initialization.
logger = structlog.get_logger(__name__)


class _LoggingState:  # pylint: disable=too-few-public-methods
    """State container for logging initialization to avoid global statements."""

    initialized: bool = False
    signature: str | None = None


_logging_state = _LoggingState()


def configure_structlog(log_level: str = "INFO", log_format: str = "console") -> None:
    """
    Configure structlog processors and renderer.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "console" for human-readable output, "json" for log shippers
    """
    base_processors: list[Any] = [
        # Security first - sanitize sensitive data
        sanitize_sensitive_data,
        summarize_state_payloads,
        # Merge context variables (correlation id, connection id)
        merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    structlog.configure(
        processors=base_processors + [renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    environment: str = "local",
    *,
    force_reconfigure: bool = False,
) -> None:
    """
    Set up structured logging once per process.

    Args:
        log_level: Logging level
        log_format: Renderer selection ("console" or "json")
        environment: Deployment environment name, included in the startup log
        force_reconfigure: When True, reconfigure even if already initialized
    """
    signature = f"{environment}:{log_level}:{log_format}"

    if _logging_state.initialized and not force_reconfigure:
        get_logger("session_relay.structured_logging.setup").debug(
            "setup_logging skipped; logging system already initialized",
            config_signature=_logging_state.signature,
        )
        return

    configure_structlog(log_level, log_format)
    _configure_uvicorn_logging()

    get_logger("session_relay.structured_logging.setup").info(
        "Logging system initialized",
        environment=environment,
        log_level=log_level,
        log_format=log_format,
    )

    _logging_state.initialized = True
    _logging_state.signature = signature


def _configure_uvicorn_logging() -> None:
    """Route uvicorn's loggers through the root handler."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def configure_logging(config: Any) -> None:
    """
    Set up logging from an AppConfig (or anything with a .logging section).

    Args:
        config: Application configuration
    """
    logging_config = config.logging
    setup_logging(
        log_level=logging_config.level,
        log_format=logging_config.format,
        environment=logging_config.environment,
    )
