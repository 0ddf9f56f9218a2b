"""HTTP routes for authentication."""

import ipaddress
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.base import ErrorCodes, error_response, success_response
from auth.api_keys import ApiKeyService
from auth.config import AuthConfig
from auth.exceptions import InvalidRefreshTokenError, MissingRefreshTokenError, RateLimitedError
from auth.permissions import current_user
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.service import AccountService
from auth.session import SessionManager
from auth.types import (
    ChangePasswordRequest,
    CreateApiKeyRequest,
    ForgotPasswordRequest,
    LoginRequest,
    PublicUser,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResult,
    TokenPair,
    UserAccount,
)


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _public_user(user: UserAccount) -> dict[str, Any]:
    return PublicUser.from_account(user).model_dump(mode="json", by_alias=True)


def _envelope(data: Any = None, message: str | None = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=success_response(data, message).to_json())


def create_auth_router(
    session_manager: SessionManager,
    account_service: AccountService,
    api_key_service: ApiKeyService,
    rate_limiter: RateLimiter,
    security_logger: SecurityLogger,
    config: AuthConfig,
) -> APIRouter:
    """Create auth router with injected services. Mount under /auth."""
    router = APIRouter(tags=["auth"])
    cookie_name = config.refresh_cookie_name

    def set_refresh_cookie(response: JSONResponse, refresh_token: str) -> None:
        response.set_cookie(
            key=cookie_name,
            value=refresh_token,
            httponly=True,
            secure=config.cookie_secure,
            samesite="strict",
            max_age=config.refresh_token_seconds,
        )

    def clear_refresh_cookie(response: JSONResponse) -> None:
        response.delete_cookie(
            key=cookie_name,
            httponly=True,
            secure=config.cookie_secure,
            samesite="strict",
        )

    def enforce_rate_limit(action: str, request: Request) -> None:
        ip_address = _get_client_ip(request)
        try:
            rate_limiter.check_rate_limit(action, ip_address)
        except RateLimitedError as e:
            security_logger.log(
                SecurityEvent.RATE_LIMITED,
                ip_address=ip_address,
                user_agent=request.headers.get("User-Agent"),
                details={"action": action, "retry_after_seconds": e.retry_after_seconds},
            )
            raise

    def session_response(result: SessionResult, message: str, status_code: int) -> JSONResponse:
        response = _envelope(
            {
                "user": _public_user(result.user),
                "accessToken": result.tokens.access_token,
                "expiresIn": result.tokens.expires_in,
            },
            message,
            status_code,
        )
        set_refresh_cookie(response, result.tokens.refresh_token)
        return response

    @router.post("/register")
    async def register(request: Request, body: RegisterRequest):
        """Create an account, send a verification email, and sign in."""
        enforce_rate_limit("register", request)

        result = account_service.register(
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
            password=body.password,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return session_response(result, "User registered successfully", 201)

    @router.post("/login")
    async def login(request: Request, body: LoginRequest):
        """Email/password login. Sets the refresh token cookie."""
        enforce_rate_limit("login", request)
        ip_address = _get_client_ip(request)

        result = session_manager.login(
            email=body.email,
            password=body.password,
            ip_address=ip_address,
            user_agent=request.headers.get("User-Agent"),
        )
        rate_limiter.reset_rate_limit("login", ip_address)
        return session_response(result, "Login successful", 200)

    @router.post("/refresh")
    async def refresh(request: Request):
        """Rotate the refresh token cookie and return a new access token.

        A rejected refresh token also clears the cookie so the browser
        stops presenting it.
        """
        try:
            tokens: TokenPair = session_manager.refresh(
                request.cookies.get(cookie_name),
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        except InvalidRefreshTokenError as e:
            code = (
                ErrorCodes.NO_REFRESH_TOKEN
                if isinstance(e, MissingRefreshTokenError)
                else ErrorCodes.INVALID_REFRESH_TOKEN
            )
            response = JSONResponse(status_code=401, content=error_response(code, str(e)).to_json())
            clear_refresh_cookie(response)
            return response

        response = _envelope(
            {"accessToken": tokens.access_token, "expiresIn": tokens.expires_in},
            "Token refreshed successfully",
        )
        set_refresh_cookie(response, tokens.refresh_token)
        return response

    @router.post("/logout")
    async def logout(request: Request, user: UserAccount = Depends(current_user)):
        """Revoke this device's refresh token and clear the cookie."""
        session_manager.logout(
            user.id,
            request.cookies.get(cookie_name),
            ip_address=_get_client_ip(request),
        )
        response = _envelope(message="Logout successful")
        clear_refresh_cookie(response)
        return response

    @router.post("/logout-all")
    async def logout_all(request: Request, user: UserAccount = Depends(current_user)):
        """Revoke every refresh token of the account."""
        session_manager.logout_all(user.id, ip_address=_get_client_ip(request))
        response = _envelope(message="Logged out from all devices")
        clear_refresh_cookie(response)
        return response

    @router.get("/me")
    async def get_current_user(user: UserAccount = Depends(current_user)):
        return _envelope(_public_user(user))

    @router.post("/change-password")
    async def change_password(
        request: Request,
        body: ChangePasswordRequest,
        user: UserAccount = Depends(current_user),
    ):
        session_manager.change_password(
            user.id,
            current_password=body.current_password,
            new_password=body.password,
            presented_token=request.cookies.get(cookie_name),
            ip_address=_get_client_ip(request),
        )
        return _envelope(message="Password changed successfully")

    @router.post("/forgot-password")
    async def forgot_password(request: Request, body: ForgotPasswordRequest):
        """Always 200 for unknown emails; see AccountService.forgot_password."""
        enforce_rate_limit("forgot-password", request)

        account_service.forgot_password(
            body.email,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return _envelope(message="If an account exists with this email, a password reset link has been sent")

    @router.post("/reset-password/{token}")
    async def reset_password(request: Request, token: str, body: ResetPasswordRequest):
        session_manager.reset_password(token, body.password, ip_address=_get_client_ip(request))
        response = _envelope(message="Password reset successful. Please log in with your new password")
        clear_refresh_cookie(response)
        return response

    @router.get("/verify-email/{token}")
    async def verify_email(request: Request, token: str):
        account_service.verify_email(token, ip_address=_get_client_ip(request))
        return _envelope(message="Email verified successfully")

    @router.post("/resend-verification")
    async def resend_verification(user: UserAccount = Depends(current_user)):
        account_service.resend_verification(user.id)
        return _envelope(message="Verification email sent")

    @router.post("/api-keys")
    async def create_api_key(body: CreateApiKeyRequest, user: UserAccount = Depends(current_user)):
        """The raw key is only ever returned here."""
        created = api_key_service.create_key(user, body.name)
        return _envelope(
            created.model_dump(mode="json", by_alias=True),
            "API key created. Store it now; it will not be shown again",
            201,
        )

    @router.delete("/api-keys/{key_id}")
    async def revoke_api_key(key_id: UUID, user: UserAccount = Depends(current_user)):
        api_key_service.revoke_key(user, key_id)
        return _envelope(message="API key revoked")

    return router
