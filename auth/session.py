"""Session lifecycle: login, refresh rotation, logout, password changes.

Per account the session state moves
Unauthenticated -> Authenticated -> {Authenticated (rotated),
Unauthenticated (logged out), Locked}.

A refresh token is honoured only while its exact value is stored on the
account. Presenting a correctly signed token that is no longer stored
means it was already rotated (or revoked) and is being replayed; every
session of that account is then revoked.
"""

import logging
from datetime import timedelta
from uuid import UUID

from auth.config import AuthConfig, PasswordChangeSessionPolicy
from auth.database import AuthDatabase
from auth.exceptions import (
    AccountDeactivatedError,
    AccountLockedError,
    InvalidCredentialsError,
    InvalidPasswordError,
    InvalidRefreshTokenError,
    MissingRefreshTokenError,
    OneTimeTokenInvalidError,
    TokenExpiredError,
    TokenInvalidError,
    UserNotFoundError,
)
from auth.mailer import AuthMailer
from auth.passwords import hash_password, hash_token, validate_password_policy, verify_password
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.tokens import TokenIssuer
from auth.types import LoginAttempt, SessionResult, TokenPair, UserAccount
from clients.email_client import EmailGatewayError
from utils.timezone import minutes_until, now_utc

logger = logging.getLogger(__name__)


class SessionManager:
    """Orchestrates token-pair sessions against the credential store."""

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        token_issuer: TokenIssuer,
        security_logger: SecurityLogger,
        mailer: AuthMailer,
    ):
        self._config = config
        self._auth_db = auth_db
        self._token_issuer = token_issuer
        self._security_logger = security_logger
        self._mailer = mailer
        self._dummy_hash: str | None = None

    def _equalize_timing(self, password: str) -> None:
        """Spend one bcrypt comparison when there is no account to compare with."""
        if self._dummy_hash is None:
            self._dummy_hash = hash_password("timing-equalizer", self._config.bcrypt_rounds)
        verify_password(password, self._dummy_hash)

    def start_session(self, user: UserAccount) -> TokenPair:
        """Issue a token pair and store its refresh token on the account."""
        tokens = self._token_issuer.issue_token_pair(user.id)
        self._auth_db.add_refresh_token(
            user.id,
            tokens.refresh_token,
            issued_at=now_utc(),
            max_tokens=self._config.max_refresh_tokens,
        )
        return tokens

    def login(
        self,
        email: str,
        password: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> SessionResult:
        """Authenticate email/password and open a new session.

        Flow:
        1. Look up account (unknown email -> same error as bad password)
        2. Refuse while locked; clear a lock that has run out
        3. Refuse deactivated accounts
        4. Verify password; on failure count it, maybe lock, record history
        5. Reset lockout, record history, issue tokens

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            AccountLockedError: Locked; carries minutes remaining.
            AccountDeactivatedError: Account inactive.
        """
        email = email.strip().lower()
        now = now_utc()

        user = self._auth_db.get_user_by_email(email)
        if user is None:
            self._equalize_timing(password)
            self._security_logger.log(
                SecurityEvent.LOGIN_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "user_not_found"},
            )
            raise InvalidCredentialsError("Invalid credentials")

        if user.is_locked(now):
            self._security_logger.log(
                SecurityEvent.LOGIN_BLOCKED_LOCKED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise AccountLockedError(minutes_until(user.locked_until, now))

        if user.locked_until is not None:
            self._auth_db.clear_expired_lock(user.id, now)

        if not user.is_active:
            self._security_logger.log(
                SecurityEvent.LOGIN_BLOCKED_INACTIVE,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise AccountDeactivatedError("Account is deactivated")

        if not verify_password(password, user.password_hash):
            self._handle_failed_password(user, ip_address, user_agent, now)
            raise InvalidCredentialsError("Invalid credentials")

        self._auth_db.record_successful_login(user.id, now)
        self._auth_db.append_login_attempt(
            user.id,
            LoginAttempt(ip_address=ip_address, user_agent=user_agent, success=True, attempted_at=now),
            limit=self._config.login_history_limit,
        )
        tokens = self.start_session(user)

        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"User logged in: {user.email} from IP: {ip_address}")

        # Re-read for last_login_at and the cleared counters
        user = self._auth_db.get_user_by_id(user.id) or user
        return SessionResult(user=user, tokens=tokens)

    def _handle_failed_password(
        self,
        user: UserAccount,
        ip_address: str | None,
        user_agent: str | None,
        now,
    ) -> None:
        lock_until = now + timedelta(minutes=self._config.lockout_minutes)
        count, locked_until = self._auth_db.record_failed_login(
            user.id,
            max_attempts=self._config.max_login_attempts,
            lock_until=lock_until,
            now=now,
        )
        self._auth_db.append_login_attempt(
            user.id,
            LoginAttempt(ip_address=ip_address, user_agent=user_agent, success=False, attempted_at=now),
            limit=self._config.login_history_limit,
        )
        self._security_logger.log(
            SecurityEvent.LOGIN_FAILED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"reason": "bad_password", "failed_login_count": count},
        )
        if locked_until == lock_until:
            self._security_logger.log(
                SecurityEvent.ACCOUNT_LOCKED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"failed_login_count": count, "locked_until": locked_until.isoformat()},
            )

    def refresh(
        self,
        presented_token: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """Rotate a refresh token into a new token pair.

        Raises:
            MissingRefreshTokenError: No token presented.
            InvalidRefreshTokenError: Bad/expired token, or reuse detected
                (reuse_detected=True; all of the account's sessions revoked).
            AccountDeactivatedError: Account inactive.
        """
        if not presented_token:
            raise MissingRefreshTokenError()

        try:
            claims = self._token_issuer.verify_refresh(presented_token)
        except (TokenExpiredError, TokenInvalidError) as e:
            raise InvalidRefreshTokenError() from e

        user = self._auth_db.get_user_by_id(claims.user_id)
        if user is None:
            raise InvalidRefreshTokenError()
        if not user.is_active:
            raise AccountDeactivatedError("Account is deactivated")

        tokens = self._token_issuer.issue_token_pair(user.id)
        rotated = self._auth_db.rotate_refresh_token(
            user.id,
            old_token=presented_token,
            new_token=tokens.refresh_token,
            issued_at=now_utc(),
            max_tokens=self._config.max_refresh_tokens,
        )

        if not rotated:
            revoked = self._auth_db.clear_refresh_tokens(user.id)
            self._security_logger.log(
                SecurityEvent.REFRESH_TOKEN_REUSE,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"token_id": claims.token_id, "revoked_sessions": revoked},
            )
            raise InvalidRefreshTokenError(
                "Invalid refresh token - possible token reuse detected",
                reuse_detected=True,
            )

        self._security_logger.log(
            SecurityEvent.TOKEN_REFRESHED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return tokens

    def logout(self, user_id: UUID, presented_token: str | None, ip_address: str | None = None) -> None:
        """End this device's session. Safe to call without a token."""
        if presented_token:
            self._auth_db.remove_refresh_token(user_id, presented_token)

        self._security_logger.log(
            SecurityEvent.LOGGED_OUT,
            user_id=user_id,
            ip_address=ip_address,
        )

    def logout_all(self, user_id: UUID, ip_address: str | None = None) -> None:
        """End every session of the account."""
        revoked = self._auth_db.clear_refresh_tokens(user_id)

        self._security_logger.log(
            SecurityEvent.LOGGED_OUT_ALL,
            user_id=user_id,
            ip_address=ip_address,
            details={"revoked_sessions": revoked},
        )

    def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
        presented_token: str | None,
        ip_address: str | None = None,
    ) -> None:
        """Change password for a signed-in user.

        Other sessions are revoked per config.password_change_session_policy.

        Raises:
            UserNotFoundError: Account vanished.
            InvalidPasswordError: current_password wrong.
            ValidationFailedError: new_password fails the policy.
        """
        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found")

        if not verify_password(current_password, user.password_hash):
            raise InvalidPasswordError("Current password is incorrect")

        validate_password_policy(new_password)

        self._auth_db.update_password(
            user.id,
            hash_password(new_password, self._config.bcrypt_rounds),
            changed_at=now_utc(),
        )

        if self._config.password_change_session_policy == PasswordChangeSessionPolicy.KEEP_CURRENT:
            revoked = self._auth_db.retain_only_refresh_token(user.id, presented_token)
        else:
            revoked = self._auth_db.clear_refresh_tokens(user.id)

        self._security_logger.log(
            SecurityEvent.PASSWORD_CHANGED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            details={
                "policy": self._config.password_change_session_policy.value,
                "revoked_sessions": revoked,
            },
        )
        logger.info(f"Password changed for user: {user.email}")
        self._send_password_changed_notice(user)

    def reset_password(self, raw_token: str, new_password: str, ip_address: str | None = None) -> None:
        """Set a new password from an emailed reset token; revokes all sessions.

        Raises:
            ValidationFailedError: new_password fails the policy.
            OneTimeTokenInvalidError: Token unknown, expired or already used.
        """
        validate_password_policy(new_password)

        user = self._auth_db.consume_password_reset(
            hash_token(raw_token),
            hash_password(new_password, self._config.bcrypt_rounds),
            now=now_utc(),
        )
        if user is None:
            raise OneTimeTokenInvalidError("Invalid or expired reset token")

        revoked = self._auth_db.clear_refresh_tokens(user.id)

        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            details={"revoked_sessions": revoked},
        )
        logger.info(f"Password reset for user: {user.email}")
        self._send_password_changed_notice(user)

    def _send_password_changed_notice(self, user: UserAccount) -> None:
        try:
            self._mailer.send_password_changed(user)
        except EmailGatewayError as e:
            logger.error(f"Failed to send password change confirmation to {user.email}: {e}")

    def authenticate(self, access_token: str) -> UserAccount:
        """Resolve a bearer access token to an active account.

        Raises:
            TokenExpiredError: Client should refresh.
            TokenInvalidError: Client must log in again.
            UserNotFoundError: Subject no longer exists.
            AccountDeactivatedError: Account inactive.
        """
        user_id = self._token_issuer.verify_access(access_token)

        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        if not user.is_active:
            raise AccountDeactivatedError("Account is deactivated")
        return user
