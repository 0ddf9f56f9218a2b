"""Account service - registration, email verification, password reset requests."""

import logging
from datetime import timedelta
from uuid import UUID

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import (
    EmailAlreadyRegisteredError,
    EmailAlreadyVerifiedError,
    EmailDeliveryFailedError,
    OneTimeTokenInvalidError,
    UserNotFoundError,
)
from auth.mailer import AuthMailer
from auth.passwords import generate_one_time_token, hash_password, hash_token, validate_password_policy
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionManager
from auth.types import SessionResult, UserAccount
from clients.email_client import EmailGatewayError
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AccountService:
    """Account lifecycle flows that sit outside a session.

    Handles:
    - Registration (signs the new user in immediately)
    - Email verification and resend
    - Forgot-password (with enumeration protection)

    Completing a password reset lives on SessionManager because it
    revokes sessions.
    """

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        security_logger: SecurityLogger,
        mailer: AuthMailer,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._security_logger = security_logger
        self._mailer = mailer

    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SessionResult:
        """Create an account and open its first session.

        The verification email is best effort: a gateway failure is logged
        and the account still gets created.

        Raises:
            ValidationFailedError: Password fails the policy.
            EmailAlreadyRegisteredError: Email taken.
        """
        email = email.strip().lower()
        validate_password_policy(password)

        if self._auth_db.get_user_by_email(email) is not None:
            raise EmailAlreadyRegisteredError("Email already registered")

        raw_token, token_hash = generate_one_time_token()
        user = self._auth_db.create_user(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            password_hash=hash_password(password, self._config.bcrypt_rounds),
            verification_token_hash=token_hash,
            verification_expires_at=now_utc() + timedelta(hours=self._config.email_verification_hours),
        )

        try:
            self._mailer.send_verification(user, raw_token)
        except EmailGatewayError as e:
            logger.error(f"Failed to send verification email to {user.email}: {e}")

        tokens = self._session_manager.start_session(user)

        self._security_logger.log(
            SecurityEvent.USER_REGISTERED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"User registered: {user.email}")

        return SessionResult(user=user, tokens=tokens)

    def verify_email(self, raw_token: str, ip_address: str | None = None) -> UserAccount:
        """Consume an email verification token.

        Raises:
            OneTimeTokenInvalidError: Unknown, expired or already used.
        """
        user = self._auth_db.consume_email_verification(hash_token(raw_token), now_utc())
        if user is None:
            raise OneTimeTokenInvalidError("Invalid or expired verification token")

        self._security_logger.log(
            SecurityEvent.EMAIL_VERIFIED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )
        logger.info(f"Email verified for user: {user.email}")
        return user

    def resend_verification(self, user_id: UUID) -> None:
        """Issue a fresh verification token and email it.

        The new token replaces any pending one. If the email cannot be sent
        the token is withdrawn again.

        Raises:
            UserNotFoundError: Account vanished.
            EmailAlreadyVerifiedError: Nothing to verify.
            EmailDeliveryFailedError: Gateway failed.
        """
        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        if user.email_verified:
            raise EmailAlreadyVerifiedError("Email is already verified")

        raw_token, token_hash = generate_one_time_token()
        self._auth_db.set_email_verification_token(
            user.id,
            token_hash,
            now_utc() + timedelta(hours=self._config.email_verification_hours),
        )

        try:
            self._mailer.send_verification(user, raw_token)
        except EmailGatewayError as e:
            logger.error(f"Failed to resend verification email to {user.email}: {e}")
            self._auth_db.set_email_verification_token(user.id, None, None)
            raise EmailDeliveryFailedError("Email could not be sent") from e

    def forgot_password(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Email a password reset link if the account exists.

        Returns normally for unknown emails so callers cannot tell which
        addresses are registered.

        Raises:
            EmailDeliveryFailedError: Account exists but the email failed
                (the reset token is withdrawn).
        """
        email = email.strip().lower()

        user = self._auth_db.get_user_by_email(email)
        if user is None:
            logger.info(f"Password reset requested for unknown email from IP: {ip_address}")
            return

        raw_token, token_hash = generate_one_time_token()
        self._auth_db.set_password_reset_token(
            user.id,
            token_hash,
            now_utc() + timedelta(minutes=self._config.password_reset_minutes),
        )

        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_REQUESTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            self._mailer.send_password_reset(user, raw_token)
        except EmailGatewayError as e:
            logger.error(f"Failed to send password reset email to {user.email}: {e}")
            self._auth_db.set_password_reset_token(user.id, None, None)
            raise EmailDeliveryFailedError("Email could not be sent") from e
