"""
Logging processors for structlog event processing.

Session state blobs are opaque and can be large; they are summarised rather
than written to the log. Credentials in headers are redacted.
"""

import re
from typing import Any

# Fields whose values must never reach a log sink
_SENSITIVE_PATTERNS = [
    r"\bpassword\b",
    r"\btoken\b",
    r"\bsecret\b",
    r"_key\b",
    r"^key$",
    r"\bcredential\b",
    r"\bauthorization\b",
    r"\bcookie\b",
]

# Fields carrying session state payloads
_PAYLOAD_FIELDS = {"state", "combat_state", "combatState", "data"}

MAX_PAYLOAD_PREVIEW = 120


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            key_lower = str(key).lower()
            if isinstance(value, dict) and key not in _PAYLOAD_FIELDS:
                sanitized[key] = sanitize_dict(value)
            elif any(re.search(pattern, key_lower) for pattern in _SENSITIVE_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def summarize_state_payloads(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace opaque state payloads with a short preview."""
    for field_name in _PAYLOAD_FIELDS & event_dict.keys():
        preview = repr(event_dict[field_name])
        if len(preview) > MAX_PAYLOAD_PREVIEW:
            event_dict[field_name] = preview[:MAX_PAYLOAD_PREVIEW] + "...(truncated)"
    return event_dict
