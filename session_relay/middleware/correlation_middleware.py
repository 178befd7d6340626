"""
Correlation middleware for request tracing and logging context.

Every HTTP request gets a correlation id, taken from the X-Correlation-ID
header when the caller supplies one, bound into the structlog context for
the request's duration and echoed back on the response. Requests addressed
to a single session also carry its id in the context, so a host's update and
the fan-out it triggers can be followed in the logs.

Pure ASGI (not BaseHTTPMiddleware): WebSocket and lifespan scopes pass
straight through.
"""

import re
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..structured_logging.logging_config import bind_request_context, clear_request_context, get_logger

logger = get_logger(__name__)

_SESSION_PATH = re.compile(r"^/sessions/(?P<session_id>[^/]+)/?$")


def session_id_from_path(path: str) -> str | None:
    match = _SESSION_PATH.match(path)
    return match.group("session_id") if match else None


class CorrelationMiddleware:  # pylint: disable=too-few-public-methods
    """Binds a correlation id (and the addressed session, if any) to each HTTP request."""

    def __init__(self, app: ASGIApp, correlation_header: str = "X-Correlation-ID") -> None:
        self.app = app
        self.correlation_header = correlation_header

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = Headers(scope=scope).get(self.correlation_header) or str(uuid.uuid4())
        method = scope.get("method", "")
        path = scope.get("path", "")
        client = scope.get("client")

        context = {
            "correlation_id": correlation_id,
            "request_id": uuid.uuid4().hex[:12],
            "remote_addr": client[0] if client else "unknown",
            "method": method,
            "path": path,
        }
        session_id = session_id_from_path(path)
        if session_id:
            context["session_id"] = session_id
        bind_request_context(**context)

        started = time.perf_counter()
        status_holder: dict[str, int] = {}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).append(self.correlation_header, correlation_id)
                status_holder["status"] = message.get("status", 500)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            logger.exception("Unhandled error while serving request", method=method, path=path)
            raise
        else:
            if "status" in status_holder:
                logger.info(
                    "Request completed",
                    method=method,
                    path=path,
                    status_code=status_holder["status"],
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
        finally:
            clear_request_context()
