"""
FastAPI exception handlers for the session HTTP surface.

Every failure leaves the API as a JSON body with an "error" string. Relay
errors map to their HTTP status; anything unexpected becomes a generic 500
with the detail kept in the logs.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .error_types import ErrorMessages, ErrorType, create_standard_error_response
from .exceptions import InvalidArgumentError, RelayError, SessionNotFoundError, StoreUnavailableError
from .structured_logging.logging_config import get_logger

logger = get_logger(__name__)


def _request_metadata(request: Request) -> dict[str, Any]:
    return {"path": request.url.path, "method": request.method}


async def session_not_found_handler(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    error_type = ErrorType.SESSION_EXPIRED if exc.expired else ErrorType.SESSION_NOT_FOUND
    return JSONResponse(status_code=404, content=create_standard_error_response(exc.message, error_type))


async def invalid_argument_handler(request: Request, exc: InvalidArgumentError) -> JSONResponse:
    return JSONResponse(status_code=400, content=create_standard_error_response(exc.message, ErrorType.INVALID_INPUT))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON or wrongly typed fields in a request body."""
    logger.info("Request validation failed", errors=exc.errors(), **_request_metadata(request))
    return JSONResponse(
        status_code=400,
        content=create_standard_error_response(ErrorMessages.INVALID_REQUEST_BODY, ErrorType.VALIDATION_ERROR),
    )


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=create_standard_error_response(ErrorMessages.INTERNAL_ERROR, ErrorType.STORE_UNAVAILABLE),
    )


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=create_standard_error_response(ErrorMessages.INTERNAL_ERROR, ErrorType.INTERNAL_ERROR),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Render HTTP exceptions as {"error": detail}.

    Unknown routes come through here as a bare 404 and get the fixed
    "Not found" text rather than Starlette's default detail.
    """
    if exc.status_code == 404 and exc.detail in (None, "Not Found"):
        message = ErrorMessages.NOT_FOUND
        error_type = ErrorType.RESOURCE_NOT_FOUND
    elif exc.status_code >= 500:
        message = str(exc.detail) if exc.detail else ErrorMessages.INTERNAL_ERROR
        error_type = ErrorType.INTERNAL_ERROR
    else:
        message = str(exc.detail)
        error_type = ErrorType.RESOURCE_NOT_FOUND if exc.status_code == 404 else ErrorType.INVALID_INPUT

    return JSONResponse(
        status_code=exc.status_code,
        content=create_standard_error_response(message, error_type),
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception in request",
        error_type=type(exc).__name__,
        error=str(exc),
        exc_info=True,
        **_request_metadata(request),
    )
    return JSONResponse(
        status_code=500,
        content=create_standard_error_response(ErrorMessages.INTERNAL_ERROR, ErrorType.INTERNAL_ERROR),
    )


def register_error_handlers(app: FastAPI) -> None:
    """
    Register all error handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(SessionNotFoundError, session_not_found_handler)
    app.add_exception_handler(InvalidArgumentError, invalid_argument_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Error handlers registered")
