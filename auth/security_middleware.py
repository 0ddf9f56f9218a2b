"""Security middleware for FastAPI - bearer/API-key authentication and user context."""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import ErrorCodes, error_response
from auth.api_keys import ApiKeyService
from auth.exceptions import (
    AccountDeactivatedError,
    InvalidApiKeyError,
    TokenExpiredError,
    TokenInvalidError,
    UserNotFoundError,
)
from auth.session import SessionManager
from utils.user_context import clear_current_user, set_current_user

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def _unauthorized(code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=error_response(code, message).to_json(),
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that authenticates requests and sets user context.

    For protected routes:
    1. X-API-Key header, if present, is resolved to its owner
    2. Otherwise the Authorization: Bearer access token is verified
    3. Sets user, user_id, role and auth_method on request.state and the
       user context
    4. Clears context after request completes

    TOKEN_EXPIRED tells the client to refresh; every other 401 code means
    refreshing will not help.
    """

    PUBLIC_PATHS = [
        "/auth/register",
        "/auth/login",
        "/auth/refresh",
        "/auth/forgot-password",
        "/auth/reset-password/",
        "/auth/verify-email/",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_manager: SessionManager, api_key_service: ApiKeyService):
        super().__init__(app)
        self._session_manager = session_manager
        self._api_key_service = api_key_service

    def _is_public_path(self, path: str) -> bool:
        """Exact match, or prefix match for entries ending in '/'."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path:
                return True
            if public_path.endswith("/") and path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if request.method == "OPTIONS" or self._is_public_path(request.url.path):
            return await call_next(request)

        api_key = request.headers.get(API_KEY_HEADER)
        if api_key:
            try:
                user = self._api_key_service.authenticate(api_key)
            except InvalidApiKeyError:
                return _unauthorized(ErrorCodes.INVALID_API_KEY, "Invalid API key")
            except AccountDeactivatedError:
                return _unauthorized(ErrorCodes.ACCOUNT_DEACTIVATED, "Account is deactivated")
            auth_method = "api_key"
        else:
            authorization = request.headers.get("Authorization", "")
            scheme, _, token = authorization.partition(" ")
            if scheme.lower() != "bearer" or not token.strip():
                return _unauthorized(ErrorCodes.NO_TOKEN, "Access token required")

            try:
                user = self._session_manager.authenticate(token.strip())
            except TokenExpiredError:
                return _unauthorized(ErrorCodes.TOKEN_EXPIRED, "Access token expired")
            except TokenInvalidError:
                return _unauthorized(ErrorCodes.INVALID_TOKEN, "Invalid access token")
            except UserNotFoundError:
                return _unauthorized(ErrorCodes.USER_NOT_FOUND, "User not found")
            except AccountDeactivatedError:
                return _unauthorized(ErrorCodes.ACCOUNT_DEACTIVATED, "Account is deactivated")
            auth_method = "jwt"

        set_current_user(user)
        request.state.user = user
        request.state.user_id = user.id
        request.state.role = user.role
        request.state.auth_method = auth_method

        try:
            response = await call_next(request)
            return response
        finally:
            # Always clear context
            clear_current_user()
