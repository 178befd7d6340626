"""
Structured logging package for the session relay.

All imports should use explicit paths like
'from session_relay.structured_logging.logging_config import get_logger'.

The directory is named 'structured_logging' rather than 'logging' so it never
shadows the standard library module.
"""

__all__: list[str] = []
