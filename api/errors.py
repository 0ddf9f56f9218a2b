"""Global exception handlers for FastAPI.

Typed auth exceptions map to a fixed (status, code). Anything else is a
server fault: logged with traceback and rendered as INTERNAL_ERROR.
"""

import logging

import psycopg2
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import ErrorCodes, error_response
from auth.exceptions import (
    AccountDeactivatedError,
    AccountLockedError,
    AuthError,
    AuthenticationRequiredError,
    EmailAlreadyRegisteredError,
    EmailAlreadyVerifiedError,
    EmailDeliveryFailedError,
    EmailVerificationRequiredError,
    InvalidApiKeyError,
    InvalidCredentialsError,
    InvalidPasswordError,
    InvalidRefreshTokenError,
    MissingRefreshTokenError,
    OneTimeTokenInvalidError,
    PermissionDeniedError,
    RateLimitedError,
    ResourceNotFoundError,
    TokenExpiredError,
    TokenInvalidError,
    UserNotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

# Ordered: subclasses before their bases
_AUTH_ERROR_MAP: list[tuple[type[AuthError], int, str]] = [
    (AuthenticationRequiredError, 401, ErrorCodes.NO_TOKEN),
    (InvalidCredentialsError, 401, ErrorCodes.INVALID_CREDENTIALS),
    (AccountLockedError, 423, ErrorCodes.ACCOUNT_LOCKED),
    (AccountDeactivatedError, 403, ErrorCodes.ACCOUNT_DEACTIVATED),
    (TokenExpiredError, 401, ErrorCodes.TOKEN_EXPIRED),
    (TokenInvalidError, 401, ErrorCodes.INVALID_TOKEN),
    (MissingRefreshTokenError, 401, ErrorCodes.NO_REFRESH_TOKEN),
    (InvalidRefreshTokenError, 401, ErrorCodes.INVALID_REFRESH_TOKEN),
    (UserNotFoundError, 401, ErrorCodes.USER_NOT_FOUND),
    (InvalidApiKeyError, 401, ErrorCodes.INVALID_API_KEY),
    (InvalidPasswordError, 401, ErrorCodes.INVALID_PASSWORD),
    (ValidationFailedError, 400, ErrorCodes.VALIDATION_FAILED),
    (OneTimeTokenInvalidError, 400, ErrorCodes.INVALID_TOKEN),
    (EmailAlreadyRegisteredError, 400, ErrorCodes.EMAIL_EXISTS),
    (EmailAlreadyVerifiedError, 400, ErrorCodes.ALREADY_VERIFIED),
    (EmailDeliveryFailedError, 500, ErrorCodes.EMAIL_SEND_FAILED),
    (EmailVerificationRequiredError, 403, ErrorCodes.EMAIL_NOT_VERIFIED),
    (ResourceNotFoundError, 404, ErrorCodes.NOT_FOUND),
    (RateLimitedError, 429, ErrorCodes.RATE_LIMITED),
]


def resolve_auth_error(exc: AuthError) -> tuple[int, str]:
    """Return (http_status, error_code) for an auth exception."""
    if isinstance(exc, PermissionDeniedError):
        return 403, exc.code
    for exc_type, status, code in _AUTH_ERROR_MAP:
        if isinstance(exc, exc_type):
            return status, code
    return 400, ErrorCodes.VALIDATION_FAILED


def auth_error_response(exc: AuthError) -> JSONResponse:
    """Render an auth exception as the error envelope."""
    status, code = resolve_auth_error(exc)
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=status,
        headers=headers,
        content=error_response(code, str(exc)).to_json(),
    )


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=error_response(
            ErrorCodes.INTERNAL_ERROR,
            "An internal error occurred",
        ).to_json(),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return auth_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.VALIDATION_FAILED,
                "; ".join(messages) or "Invalid request",
            ).to_json(),
        )

    @app.exception_handler(psycopg2.Error)
    async def database_error_handler(request: Request, exc: psycopg2.Error):
        logger.exception(f"Database error on {request.method} {request.url.path}")
        return _internal_error()

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _internal_error()
