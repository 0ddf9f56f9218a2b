"""Authentication configuration."""

from enum import Enum

from pydantic import BaseModel, Field, SecretStr, model_validator


class PasswordChangeSessionPolicy(str, Enum):
    """What happens to other sessions when a signed-in user changes password.

    KEEP_CURRENT keeps only the refresh token presented with the change
    request. REVOKE_ALL signs out every device, including the caller's.
    A password reset always revokes every session regardless of policy.
    """

    KEEP_CURRENT = "keep_current"
    REVOKE_ALL = "revoke_all"


class TokenSecrets(BaseModel):
    """Signing secrets for access and refresh tokens. Loaded from Vault."""

    access_secret: SecretStr = Field(..., min_length=32)
    refresh_secret: SecretStr = Field(..., min_length=32)

    @model_validator(mode="after")
    def _secrets_differ(self) -> "TokenSecrets":
        if self.access_secret.get_secret_value() == self.refresh_secret.get_secret_value():
            raise ValueError("access_secret and refresh_secret must differ")
        return self


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    days for long ones) to make configuration intuitive.
    """

    # Tokens
    access_token_minutes: int = Field(
        default=15,
        description="Access token lifetime",
        ge=1,
        le=60,
    )
    refresh_token_days: int = Field(
        default=7,
        description="Refresh token (and cookie) lifetime",
        ge=1,
        le=90,
    )
    max_refresh_tokens: int = Field(
        default=5,
        description="Concurrent sessions kept per account; oldest evicted first",
        ge=1,
        le=20,
    )
    jwt_algorithm: str = Field(
        default="HS256",
        pattern=r"^HS(256|384|512)$",
        description="HMAC algorithm for both token kinds",
    )

    # Lockout
    max_login_attempts: int = Field(
        default=5,
        description="Consecutive failed logins before the account is locked",
        ge=1,
        le=20,
    )
    lockout_minutes: int = Field(
        default=120,
        description="How long a locked account stays locked",
        ge=1,
        le=1440,
    )
    login_history_limit: int = Field(
        default=10,
        description="Login attempts retained per account",
        ge=1,
        le=100,
    )

    # One-time tokens
    email_verification_hours: int = Field(default=24, ge=1, le=168)
    password_reset_minutes: int = Field(default=60, ge=5, le=1440)

    # Passwords
    bcrypt_rounds: int = Field(default=12, ge=4, le=16)
    password_change_session_policy: PasswordChangeSessionPolicy = PasswordChangeSessionPolicy.KEEP_CURRENT

    # Rate limiting (per client IP on login/register/forgot-password)
    auth_rate_limit_attempts: int = Field(
        default=20,
        description="Max auth requests per IP per window",
        ge=1,
        le=1000,
    )
    auth_rate_limit_window_minutes: int = Field(
        default=15,
        description="Rate limit window duration",
        ge=1,
        le=60,
    )

    # Cookie
    refresh_cookie_name: str = Field(default="refreshToken", min_length=1)
    cookie_secure: bool = Field(
        default=True,
        description="Send the refresh cookie only over HTTPS (disable for local dev)",
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:5173",
        description="Client base URL for verification and reset links",
    )
    app_name: str = Field(
        default="CRM",
        description="Application name for emails",
    )

    @property
    def access_token_seconds(self) -> int:
        return self.access_token_minutes * 60

    @property
    def refresh_token_seconds(self) -> int:
        return self.refresh_token_days * 24 * 3600

    @property
    def access_token_expires_in(self) -> str:
        """Lifetime as reported to clients in `expiresIn` (e.g. '15m')."""
        return f"{self.access_token_minutes}m"
