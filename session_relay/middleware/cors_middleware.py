"""
CORS middleware for the session API.

Browser hosts and viewers call the API from arbitrary origins. Preflight
requests are answered directly with 200, and every other HTTP response gets
the same allow headers appended.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)


class SessionCORSMiddleware:  # pylint: disable=too-few-public-methods
    """Pure ASGI middleware applying a fixed CORS policy."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        allow_origins: list[str],
        allow_methods: list[str],
        allow_headers: list[str],
    ) -> None:
        self.app = app
        self.allow_origins = list(allow_origins or ["*"])
        self.allow_methods = [m.upper() for m in (allow_methods or [])]
        self.allow_headers = list(allow_headers or [])
        self.allow_all_origins = "*" in self.allow_origins

    def _origin_value(self, origin: str | None) -> str | None:
        if self.allow_all_origins:
            return "*"
        if origin and origin in self.allow_origins:
            return origin
        return None

    def cors_headers(self, origin: str | None) -> dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": ",".join(self.allow_methods),
            "Access-Control-Allow-Headers": ",".join(self.allow_headers),
        }
        allowed_origin = self._origin_value(origin)
        if allowed_origin is not None:
            headers["Access-Control-Allow-Origin"] = allowed_origin
        if not self.allow_all_origins:
            headers["Vary"] = "Origin"
        return headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        headers = self.cors_headers(origin)

        if scope.get("method") == "OPTIONS":
            logger.debug("CORS preflight", origin=origin, path=scope.get("path"))
            response = PlainTextResponse("", status_code=200, headers=headers)
            await response(scope, receive, send)
            return

        async def send_with_cors_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in headers.items():
                    if name not in response_headers:
                        response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors_headers)
