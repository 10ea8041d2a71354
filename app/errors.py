"""
Error taxonomy and the uniform error envelope.

Every failure leaves the service as::

    {"error": {"code": "...", "message": "...", "details": [...]}}

Codes are stable; messages are human-readable and may change.
"""

from __future__ import annotations

from enum import StrEnum

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING = "AUTH_MISSING"
    AUTH_INVALID = "AUTH_INVALID"
    AUTH_UNAUTHORIZED = "AUTH_UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BOOKING_FORBIDDEN = "BOOKING_FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    BOOKING_NOT_ALLOWED = "BOOKING_NOT_ALLOWED"
    BOOKING_EXISTS = "BOOKING_EXISTS"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Base for every error that is reported to the caller with a stable code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: list[str] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or []
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_envelope(self) -> dict:
        return {
            "error": {
                "code": str(self.code),
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(AppError):
    """Malformed or missing input, or a request the resource state rejects."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.VALIDATION_ERROR


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = ErrorCode.AUTH_UNAUTHORIZED


class AuthorizationError(AppError):
    """Valid identity, insufficient role or ownership."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = ErrorCode.FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = ErrorCode.NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_code = ErrorCode.BOOKING_EXISTS


class InternalError(AppError):
    pass


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _describe(error: dict) -> str:
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc) or "body"
    return f"{field}: {error.get('msg', 'invalid value')}"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Pydantic reports errors in field-declaration order, so the first entry
    names the first offending field.
    """
    described = [_describe(e) for e in exc.errors()]
    err = ValidationError(described[0] if described else "Invalid request", details=described)
    return JSONResponse(status_code=err.status_code, content=err.to_envelope())


_HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.AUTH_UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
}


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Router-level errors (unknown path, wrong method) in the same envelope."""
    if exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    else:
        code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.VALIDATION_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": str(code), "message": message, "details": []}},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(
        "Unhandled error on {} {}", request.method, request.url.path
    )
    err = InternalError("Internal server error")
    return JSONResponse(status_code=err.status_code, content=err.to_envelope())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
