"""Typed exceptions for auth failures.

Services raise these; api/errors.py maps each one to an HTTP status and a
machine-readable code. Storage exceptions are never translated into these.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidCredentialsError(AuthError):
    """
    Email unknown or password wrong.

    Both cases raise this same error so responses never reveal whether an
    account exists.
    """


class AccountLockedError(AuthError):
    """Too many failed logins. Login refused until the lock expires."""

    def __init__(self, minutes_remaining: int):
        self.minutes_remaining = minutes_remaining
        super().__init__(f"Account locked. Try again in {minutes_remaining} minutes")


class AccountDeactivatedError(AuthError):
    """User account is deactivated. Login and refresh not permitted."""


class TokenExpiredError(AuthError):
    """Signature valid but token past its expiry. Client should refresh."""


class TokenInvalidError(AuthError):
    """Malformed token, bad signature, or wrong token kind. Client must re-login."""


class InvalidRefreshTokenError(AuthError):
    """
    Refresh token rejected.

    reuse_detected is True when the token had a valid signature but was no
    longer on the account: every session of that account has been revoked.
    """

    def __init__(self, message: str = "Invalid refresh token", reuse_detected: bool = False):
        self.reuse_detected = reuse_detected
        super().__init__(message)


class MissingRefreshTokenError(InvalidRefreshTokenError):
    """No refresh token cookie on the request."""

    def __init__(self):
        super().__init__("Refresh token not provided")


class ValidationFailedError(AuthError):
    """Input rejected by an auth rule (e.g. password policy)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidPasswordError(AuthError):
    """Current password supplied to change-password is wrong."""


class OneTimeTokenInvalidError(AuthError):
    """Verification or reset token unknown, expired, or already used."""


class EmailAlreadyRegisteredError(AuthError):
    """Registration attempted with an email that already has an account."""


class EmailAlreadyVerifiedError(AuthError):
    """Verification resend requested for an already verified account."""


class EmailDeliveryFailedError(AuthError):
    """A flow whose whole purpose is sending an email could not send it."""


class EmailVerificationRequiredError(AuthError):
    """Endpoint requires a verified email address."""


class PermissionDeniedError(AuthError):
    """Authenticated, but not allowed to do this."""

    def __init__(self, message: str, code: str):
        self.code = code
        super().__init__(message)


class ResourceNotFoundError(AuthError):
    """Resource subject to an ownership check does not exist."""


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class UserNotFoundError(AuthError):
    """
    Token subject no longer maps to an account.

    Note: Login never raises this; unknown emails raise
    InvalidCredentialsError so existence is not revealed.
    """


class InvalidApiKeyError(AuthError):
    """API key malformed, unknown, or revoked."""


class AuthenticationRequiredError(AuthError):
    """No credentials on a request that needs an authenticated user."""
