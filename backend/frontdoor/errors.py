"""
Structured error classes for the front door.

Every error carries the HTTP status and the public plain-text body that is
returned to the caller. Internal detail stays in the exception message and
the logs; it never crosses the HTTP boundary.
"""

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"
UNAUTHORIZED = "unauthorized"
SERVER_ERROR = "server error"


class FrontDoorError(Exception):
    """Base exception for errors surfaced to HTTP callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    body: str = SERVER_ERROR

    def __init__(self, message: str = "", body: str = None, status_code: int = None):
        super().__init__(message or self.body)
        if body is not None:
            self.body = body
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(FrontDoorError):
    """No tenant resolves for the given origin, domain or id."""

    status_code = status.HTTP_404_NOT_FOUND
    body = NOT_FOUND


class BadRequestError(FrontDoorError):
    """Missing required fields or malformed parameters."""

    status_code = status.HTTP_400_BAD_REQUEST
    body = "bad request"


class UnauthorizedError(FrontDoorError):
    """Missing or invalid session, or an invalid shared secret."""

    status_code = status.HTTP_403_FORBIDDEN
    body = UNAUTHORIZED


class InvalidAPIKeyError(UnauthorizedError):
    """Service API key does not match any configured tenant."""

    status_code = status.HTTP_401_UNAUTHORIZED


class UpstreamFailureError(FrontDoorError):
    """Identity or billing provider failed or returned inconsistent data."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    body = SERVER_ERROR


def _cors_headers(request: Request) -> Optional[Dict[str, str]]:
    return getattr(request.state, "cors_headers", None)


def register_exception_handlers(app: FastAPI) -> None:
    """Render FrontDoorError as plain text and hide unexpected failures."""

    @app.exception_handler(FrontDoorError)
    async def front_door_error_handler(request: Request, exc: FrontDoorError):
        return PlainTextResponse(exc.body, status_code=exc.status_code, headers=_cors_headers(request))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(
            "Rejected malformed request",
            extra={
                "path": request.url.path,
                "error_count": len(exc.errors()),
            },
        )
        return PlainTextResponse(
            BadRequestError.body,
            status_code=BadRequestError.status_code,
            headers=_cors_headers(request),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        tenant = getattr(request.state, "tenant", None)
        logger.error(
            "Unhandled exception",
            extra={
                "tenant_id": tenant.id if tenant else "unknown",
                "error_type": type(exc).__name__,
                "path": request.url.path,
            },
            exc_info=True,
        )
        return PlainTextResponse(
            SERVER_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            headers=_cors_headers(request),
        )
