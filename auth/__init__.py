"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    InvalidCredentialsError,
    AccountLockedError,
    AccountDeactivatedError,
    TokenExpiredError,
    TokenInvalidError,
    InvalidRefreshTokenError,
    MissingRefreshTokenError,
    RateLimitedError,
    UserNotFoundError,
)
from auth.types import (
    UserAccount,
    UserRole,
    Department,
    PublicUser,
    TokenPair,
    SessionResult,
)
from auth.config import AuthConfig, TokenSecrets, PasswordChangeSessionPolicy
from auth.database import AuthDatabase
from auth.tokens import TokenIssuer
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.service import AccountService
from auth.api_keys import ApiKeyService
from auth.security_middleware import AuthMiddleware
from auth.api import create_auth_router
