"""
Session HTTP API for the session relay.

Hosts create, update and end sessions here; viewers fetch the current state.
Updates are pushed to subscribed viewers by the session service.
"""

from typing import NoReturn

from fastapi import APIRouter, HTTPException, Request, status

from ..error_types import ErrorMessages
from ..exceptions import InvalidArgumentError, SessionNotFoundError
from ..models.session import ms_to_iso_z
from ..schemas.sessions import (
    CreateSessionRequest,
    CreateSessionResponse,
    DeleteSessionResponse,
    HealthResponse,
    SessionResponse,
    UpdateSessionRequest,
    UpdateSessionResponse,
)
from ..services.session_service import SessionService
from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)

session_router = APIRouter(tags=["sessions"])


def get_session_service(request: Request) -> SessionService:
    container = getattr(request.app.state, "container", None)
    if container is None or container.session_service is None:
        raise HTTPException(status_code=503, detail="Service temporarily unavailable")
    return container.session_service


def _fail(operation_message: str, error: Exception, session_id: str | None = None) -> NoReturn:
    logger.error(
        "Session request failed",
        session_id=session_id,
        error=str(error),
        error_type=type(error).__name__,
        exc_info=True,
    )
    raise HTTPException(status_code=500, detail=operation_message) from error


@session_router.post("/sessions", status_code=status.HTTP_201_CREATED, response_model=CreateSessionResponse)
async def create_session(body: CreateSessionRequest, request: Request) -> CreateSessionResponse:
    """Create a session and return its id and expiry."""
    service = get_session_service(request)
    try:
        session = await service.create_session(body.state, lifetime_minutes=body.expires_in_minutes)
    except InvalidArgumentError:
        raise
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: internal detail must not reach the client
        _fail(ErrorMessages.FAILED_TO_CREATE, e)

    return CreateSessionResponse(sessionId=session.id, expiresAt=ms_to_iso_z(session.expires_at))


@session_router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, request: Request) -> SessionResponse:
    """Return the current state of a live session."""
    service = get_session_service(request)
    try:
        session = await service.get_session(session_id)
    except SessionNotFoundError:
        raise
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: internal detail must not reach the client
        _fail(ErrorMessages.FAILED_TO_GET, e, session_id)

    return SessionResponse(
        sessionId=session.id,
        state=session.state,
        combatState=session.state,
        createdAt=session.created_at,
        updatedAt=session.updated_at,
        expiresAt=ms_to_iso_z(session.expires_at),
    )


@session_router.put("/sessions/{session_id}", response_model=UpdateSessionResponse)
async def update_session(session_id: str, body: UpdateSessionRequest, request: Request) -> UpdateSessionResponse:
    """Replace a session's state and push it to its viewers."""
    service = get_session_service(request)
    try:
        session = await service.update_session(session_id, body.state, extend_minutes=body.extend_ttl_minutes)
    except (SessionNotFoundError, InvalidArgumentError):
        raise
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: internal detail must not reach the client
        _fail(ErrorMessages.FAILED_TO_UPDATE, e, session_id)

    return UpdateSessionResponse(updatedAt=session.updated_at)


@session_router.delete("/sessions/{session_id}", response_model=DeleteSessionResponse)
async def delete_session(session_id: str, request: Request) -> DeleteSessionResponse:
    """End a session. Deleting an unknown session still succeeds."""
    service = get_session_service(request)
    try:
        report = await service.delete_session(session_id)
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: internal detail must not reach the client
        _fail(ErrorMessages.FAILED_TO_DELETE, e, session_id)

    logger.info("Session ended by host", session_id=session_id, viewers_notified=len(report.delivered))
    return DeleteSessionResponse()


@session_router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service temporarily unavailable")
    return HealthResponse(
        status="ok",
        storage_backend=container.config.storage.backend,
        active_connections=container.connection_manager.get_connection_count(),
    )
