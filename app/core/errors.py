"""
Error taxonomy and the FastAPI handlers that render it.

Every error leaves the API as:

    {"ok": false, "error": {"source": ..., "detail": ...}}

Credential and token failures collapse to fixed messages so callers cannot
tell which check failed; the specific cause only goes to the logs.
"""

import logging
from enum import Enum
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import is_production
from app.core.log import log_event

logger = logging.getLogger(__name__)

CREDENTIAL_REJECTED = "incorrect username and/or password"


class TokenFailure(str, Enum):
    """Why a presented credential did not resolve to a principal."""
    MISSING = "missing"
    MALFORMED_CREDENTIAL = "malformed_credential"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    MALFORMED = "malformed"
    UNKNOWN_PRINCIPAL = "unknown_principal"
    INACTIVE_PRINCIPAL = "inactive_principal"
    NOT_AUTHENTICATED = "not_authenticated"


def token_failure_message(failure: TokenFailure) -> str:
    """User-facing message for a token failure."""
    match failure:
        case TokenFailure.MISSING:
            return "Token not provided"
        case TokenFailure.MALFORMED_CREDENTIAL:
            return "Use the Bearer format"
        case TokenFailure.INVALID_SIGNATURE:
            return "Invalid token signature"
        case TokenFailure.EXPIRED:
            return "Token expired"
        case TokenFailure.MALFORMED:
            return "Malformed token"
        case TokenFailure.UNKNOWN_PRINCIPAL | TokenFailure.INACTIVE_PRINCIPAL:
            return "Invalid token"
        case TokenFailure.NOT_AUTHENTICATED:
            return "Authentication required"


class AppError(Exception):
    """Base class for errors rendered to the client."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    source: str = ""

    def __init__(self, detail: str, source: Optional[str] = None, details: Any = None):
        super().__init__(detail)
        self.detail = detail
        if source is not None:
            self.source = source
        self.details = details

    def to_payload(self) -> dict:
        error: dict[str, Any] = {"source": self.source, "detail": self.detail}
        if self.details is not None:
            error["details"] = self.details
        return {"ok": False, "error": error}


class CredentialError(AppError):
    """Login rejected. `reason` is for logs only."""
    status_code = status.HTTP_403_FORBIDDEN
    source = "body/username:password"

    def __init__(self, reason: str):
        super().__init__(CREDENTIAL_REJECTED)
        self.reason = reason


class TokenError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    source = "authorization"

    def __init__(self, failure: TokenFailure):
        super().__init__(token_failure_message(failure))
        self.failure = failure


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    source = "authorization"

    def __init__(self, detail: str = "You do not have permission to access this resource"):
        super().__init__(detail)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    source = "body"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    source = "body"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    source = "params/id"


class UnknownError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AuditWriteError(Exception):
    """Appending an audit record failed. Logged by the recorder, never rendered."""

    def __init__(self, entity_type: str, entity_id: str, cause: BaseException):
        super().__init__(f"Audit write failed for {entity_type}/{entity_id}: {cause}")
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.cause = cause


def _error_response(error: AppError, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_payload(), headers=headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, TokenError) else None
    return _error_response(exc, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return _error_response(ValidationError("Invalid request data", details=details))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        log_event(logger, logging.WARNING, "NOT_FOUND", method=request.method, path=request.url.path)
        error = NotFoundError("Route not found", source="path")
    else:
        error = AppError(str(exc.detail), source="")
        error.status_code = exc.status_code
    return _error_response(error, getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Normalize anything unexpected to a 500; detail withheld in production."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception(
        "Unhandled exception",
        extra={"event": {
            "action": "UNHANDLED_ERROR",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }},
    )
    detail = "Internal server error"
    if not is_production():
        detail = f"{detail}: {exc}"
    return _error_response(UnknownError(detail, source="server", details={"request_id": request_id}))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
