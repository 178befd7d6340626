"""
HTTP client for the session API.

Used by host pages to create, update and end sessions, and by viewer pages
to fetch a session snapshot.
"""

import asyncio
from typing import Any

import httpx

from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LIFETIME_MINUTES = 480


class SessionClientError(Exception):
    """A session API call failed. Carries the server's error text when there was one."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_text(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return fallback


class SessionApiClient:
    """
    Async client for the session HTTP API.

    Args:
        base_url: API root, e.g. "https://relay.example.com"
        http_client: Optional preconfigured httpx.AsyncClient (owned by the caller)
        timeout: Request timeout in seconds when the client is created here
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        if not self.base_url:
            logger.warning("Session API URL is not set")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._pending: set[asyncio.Task] = set()

    def _url(self, path: str) -> str:
        if not self.base_url:
            raise SessionClientError("API URL not configured. Set RELAY_CLIENT_SESSIONS_API_URL.")
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, fallback: str, **kwargs: Any) -> dict[str, Any]:
        url = self._url(path)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Session API request failed", method=method, url=url, error=str(e))
            raise SessionClientError(fallback) from e

        if response.is_error:
            raise SessionClientError(_error_text(response, fallback), response.status_code)
        return response.json()

    async def create_session(self, state: Any, expires_in_minutes: int = DEFAULT_LIFETIME_MINUTES) -> dict[str, Any]:
        """Create a session. Returns {sessionId, expiresAt, message}."""
        logger.info("Creating session", url=self.base_url)
        return await self._request(
            "POST",
            "/sessions",
            "Failed to create session",
            json={"combatState": state, "expiresInMinutes": expires_in_minutes},
        )

    async def get_session(self, session_id: str) -> dict[str, Any]:
        url = self._url(f"/sessions/{session_id}")
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise SessionClientError("Failed to get session") from e

        if response.status_code == 404:
            raise SessionClientError("Session not found", 404)
        if response.is_error:
            raise SessionClientError(_error_text(response, "Failed to get session"), response.status_code)
        return response.json()

    async def update_session(
        self,
        session_id: str,
        state: Any,
        extend_ttl_minutes: int | None = None,
    ) -> dict[str, Any]:
        """Replace the session state. Returns {message, updatedAt}."""
        body: dict[str, Any] = {"combatState": state}
        if extend_ttl_minutes:
            body["extendTtlMinutes"] = extend_ttl_minutes
        return await self._request("PUT", f"/sessions/{session_id}", "Failed to update session", json=body)

    async def delete_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/sessions/{session_id}", "Failed to delete session")

    def end_session_nowait(self, session_id: str) -> asyncio.Task:
        """
        Fire-and-forget delete, for page unload.

        Delivery is not guaranteed; failures are only logged.
        """

        async def _end() -> None:
            try:
                await self.delete_session(session_id)
            except SessionClientError as e:
                logger.warning("Best-effort session end failed", session_id=session_id, error=e.message)

        task = asyncio.create_task(_end(), name=f"end-session-{session_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SessionApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
