"""Database operations for authentication.

Uses non-RLS tables: users, refresh_tokens, login_history, api_keys.
These tables are accessed during auth before user context is established.

Every method that must not lose updates under concurrent requests is a
single statement: counters are incremented in SQL, bounded lists are
appended and pruned in one CTE, and refresh-token rotation only inserts
the new token if the exact old one was deleted by the same statement.
Writes to the bounded lists first lock the account row in the same
transaction, so the prune sees rows committed by a concurrent writer.
Refresh tokens and one-time tokens are stored as SHA-256 digests.
"""

from datetime import datetime
from uuid import UUID

import psycopg2.errors

from auth.exceptions import EmailAlreadyRegisteredError
from auth.passwords import hash_token
from auth.types import ApiKey, LoginAttempt, RefreshTokenRecord, UserAccount
from clients.postgres_client import PostgresClient, Transaction
from utils.timezone import now_utc

_USER_COLUMNS = """id, email, first_name, last_name, password_hash, role, department,
    is_active, email_verified, failed_login_count, locked_until, last_login_at,
    last_password_change_at, must_change_password,
    email_verification_token_hash, email_verification_expires_at,
    password_reset_token_hash, password_reset_expires_at, created_at"""


def _to_user(row: dict | None) -> UserAccount | None:
    if row is None:
        return None
    return UserAccount.model_validate(row)


def _lock_account(tx: Transaction, user_id: UUID) -> None:
    """Serialize writers to one account's bounded lists until commit."""
    tx.execute("SELECT id FROM users WHERE id = %s FOR NO KEY UPDATE", (user_id,))


class AuthDatabase:
    """Credential store: accounts, refresh tokens, login history, API keys."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_user_by_email(self, email: str) -> UserAccount | None:
        """Find user by email (case-insensitive)."""
        return _to_user(self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = lower(%s)",
            (email.strip(),),
        ))

    def get_user_by_id(self, user_id: UUID) -> UserAccount | None:
        """Find user by ID."""
        return _to_user(self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        ))

    def create_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        verification_token_hash: str,
        verification_expires_at: datetime,
    ) -> UserAccount:
        """
        Create new user with email (lowercased) and a pending verification token.

        Raises:
            EmailAlreadyRegisteredError: Unique index on email rejected the insert.
        """
        try:
            rows = self._db.execute_returning(
                f"""INSERT INTO users
                       (email, first_name, last_name, password_hash, last_password_change_at,
                        email_verification_token_hash, email_verification_expires_at)
                   VALUES (lower(%s), %s, %s, %s, %s, %s, %s)
                   RETURNING {_USER_COLUMNS}""",
                (
                    email.strip(),
                    first_name,
                    last_name,
                    password_hash,
                    now_utc(),
                    verification_token_hash,
                    verification_expires_at,
                ),
            )
        except psycopg2.errors.UniqueViolation as e:
            raise EmailAlreadyRegisteredError("Email already registered") from e
        return _to_user(rows[0])

    def set_active(self, user_id: UUID, is_active: bool) -> bool:
        """
        Activate or deactivate a user (soft delete).

        Returns:
            True if user was found, False if not found.
        """
        rows = self._db.execute_returning(
            "UPDATE users SET is_active = %s WHERE id = %s RETURNING id",
            (is_active, user_id),
        )
        return len(rows) > 0

    # ------------------------------------------------------------------
    # Lockout
    # ------------------------------------------------------------------

    def clear_expired_lock(self, user_id: UUID, now: datetime) -> None:
        """Reset the failure counter once a lock has run out."""
        self._db.execute_returning(
            """UPDATE users
               SET failed_login_count = 0, locked_until = NULL
               WHERE id = %s AND locked_until IS NOT NULL AND locked_until <= %s
               RETURNING id""",
            (user_id, now),
        )

    def record_failed_login(
        self,
        user_id: UUID,
        max_attempts: int,
        lock_until: datetime,
        now: datetime,
    ) -> tuple[int, datetime | None]:
        """
        Atomically increment the failure counter, locking at max_attempts.

        An existing unexpired lock is never extended.

        Returns:
            (failed_login_count, locked_until) after the update.
        """
        row = self._db.execute_single(
            """UPDATE users
               SET failed_login_count = failed_login_count + 1,
                   locked_until = CASE
                       WHEN failed_login_count + 1 >= %(max_attempts)s
                            AND (locked_until IS NULL OR locked_until <= %(now)s)
                       THEN %(lock_until)s
                       ELSE locked_until
                   END
               WHERE id = %(user_id)s
               RETURNING failed_login_count, locked_until""",
            {
                "user_id": user_id,
                "max_attempts": max_attempts,
                "lock_until": lock_until,
                "now": now,
            },
        )
        if row is None:
            return 0, None
        return row["failed_login_count"], row["locked_until"]

    def record_successful_login(self, user_id: UUID, now: datetime) -> None:
        """Reset lockout state and stamp last_login_at."""
        self._db.execute_returning(
            """UPDATE users
               SET failed_login_count = 0, locked_until = NULL, last_login_at = %s
               WHERE id = %s
               RETURNING id""",
            (now, user_id),
        )

    # ------------------------------------------------------------------
    # Login history
    # ------------------------------------------------------------------

    def append_login_attempt(self, user_id: UUID, attempt: LoginAttempt, limit: int) -> None:
        """Record a login attempt, keeping only the newest `limit` entries."""
        with self._db.transaction() as tx:
            _lock_account(tx, user_id)
            tx.execute(
                """WITH inserted AS (
                       INSERT INTO login_history (user_id, ip_address, user_agent, success, attempted_at)
                       VALUES (%(user_id)s, %(ip_address)s, %(user_agent)s, %(success)s, %(attempted_at)s)
                       RETURNING id
                   )
                   DELETE FROM login_history
                   WHERE id IN (
                       SELECT id FROM login_history
                       WHERE user_id = %(user_id)s
                       ORDER BY attempted_at DESC, id DESC
                       OFFSET %(keep)s
                   )
                   RETURNING id""",
                {
                    "user_id": user_id,
                    "ip_address": attempt.ip_address,
                    "user_agent": attempt.user_agent,
                    "success": attempt.success,
                    "attempted_at": attempt.attempted_at,
                    # CTE snapshot excludes the row being inserted
                    "keep": limit - 1,
                },
            )

    def get_login_history(self, user_id: UUID) -> list[LoginAttempt]:
        """Login attempts, newest first."""
        rows = self._db.execute(
            """SELECT ip_address, user_agent, success, attempted_at
               FROM login_history
               WHERE user_id = %s
               ORDER BY attempted_at DESC, id DESC""",
            (user_id,),
        )
        return [LoginAttempt.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def list_refresh_tokens(self, user_id: UUID) -> list[RefreshTokenRecord]:
        """Stored refresh tokens, oldest first."""
        rows = self._db.execute(
            """SELECT token_hash, issued_at FROM refresh_tokens
               WHERE user_id = %s
               ORDER BY issued_at ASC, id ASC""",
            (user_id,),
        )
        return [RefreshTokenRecord.model_validate(row) for row in rows]

    def add_refresh_token(self, user_id: UUID, token: str, issued_at: datetime, max_tokens: int) -> None:
        """Store a refresh token, evicting the oldest beyond max_tokens."""
        with self._db.transaction() as tx:
            _lock_account(tx, user_id)
            tx.execute(
                """WITH inserted AS (
                       INSERT INTO refresh_tokens (user_id, token_hash, issued_at)
                       VALUES (%(user_id)s, %(token_hash)s, %(issued_at)s)
                       RETURNING id
                   )
                   DELETE FROM refresh_tokens
                   WHERE id IN (
                       SELECT id FROM refresh_tokens
                       WHERE user_id = %(user_id)s
                       ORDER BY issued_at DESC, id DESC
                       OFFSET %(keep)s
                   )
                   RETURNING id""",
                {
                    "user_id": user_id,
                    "token_hash": hash_token(token),
                    "issued_at": issued_at,
                    "keep": max_tokens - 1,
                },
            )

    def rotate_refresh_token(
        self,
        user_id: UUID,
        old_token: str,
        new_token: str,
        issued_at: datetime,
        max_tokens: int,
    ) -> bool:
        """
        Replace old_token with new_token if and only if old_token is stored.

        The delete of the exact old token gates the insert within one
        statement. Concurrent rotations of the same token serialize on the
        account row lock; the loser deletes nothing and gets False.

        Returns:
            True if rotated, False if old_token was not on the account.
        """
        with self._db.transaction() as tx:
            _lock_account(tx, user_id)
            rows = tx.execute(
                """WITH removed AS (
                       DELETE FROM refresh_tokens
                       WHERE user_id = %(user_id)s AND token_hash = %(old_hash)s
                       RETURNING id
                   ),
                   inserted AS (
                       INSERT INTO refresh_tokens (user_id, token_hash, issued_at)
                       SELECT %(user_id)s, %(new_hash)s, %(issued_at)s
                       WHERE EXISTS (SELECT 1 FROM removed)
                       RETURNING id
                   ),
                   pruned AS (
                       DELETE FROM refresh_tokens
                       WHERE EXISTS (SELECT 1 FROM removed)
                         AND id IN (
                             SELECT id FROM refresh_tokens
                             WHERE user_id = %(user_id)s AND token_hash <> %(old_hash)s
                             ORDER BY issued_at DESC, id DESC
                             OFFSET %(keep)s
                         )
                       RETURNING id
                   )
                   SELECT (SELECT count(*) FROM removed) AS removed,
                          (SELECT count(*) FROM inserted) AS inserted,
                          (SELECT count(*) FROM pruned) AS pruned""",
                {
                    "user_id": user_id,
                    "old_hash": hash_token(old_token),
                    "new_hash": hash_token(new_token),
                    "issued_at": issued_at,
                    "keep": max_tokens - 1,
                },
            )
        return bool(rows) and rows[0]["removed"] > 0

    def remove_refresh_token(self, user_id: UUID, token: str) -> bool:
        """Remove one refresh token. Returns True if it was stored."""
        rows = self._db.execute_returning(
            "DELETE FROM refresh_tokens WHERE user_id = %s AND token_hash = %s RETURNING id",
            (user_id, hash_token(token)),
        )
        return len(rows) > 0

    def retain_only_refresh_token(self, user_id: UUID, token: str | None) -> int:
        """Remove every refresh token except `token` (all of them if None)."""
        if token is None:
            return self.clear_refresh_tokens(user_id)
        rows = self._db.execute_returning(
            "DELETE FROM refresh_tokens WHERE user_id = %s AND token_hash <> %s RETURNING id",
            (user_id, hash_token(token)),
        )
        return len(rows)

    def clear_refresh_tokens(self, user_id: UUID) -> int:
        """Remove all refresh tokens. Returns how many were removed."""
        rows = self._db.execute_returning(
            "DELETE FROM refresh_tokens WHERE user_id = %s RETURNING id",
            (user_id,),
        )
        return len(rows)

    # ------------------------------------------------------------------
    # Passwords and one-time tokens
    # ------------------------------------------------------------------

    def update_password(self, user_id: UUID, password_hash: str, changed_at: datetime) -> None:
        """Set a new password hash; clears must_change_password."""
        self._db.execute_returning(
            """UPDATE users
               SET password_hash = %s, last_password_change_at = %s, must_change_password = false
               WHERE id = %s
               RETURNING id""",
            (password_hash, changed_at, user_id),
        )

    def set_password_reset_token(
        self,
        user_id: UUID,
        token_hash: str | None,
        expires_at: datetime | None,
    ) -> None:
        """Store (or with None, clear) the pending password reset token."""
        self._db.execute_returning(
            """UPDATE users
               SET password_reset_token_hash = %s, password_reset_expires_at = %s
               WHERE id = %s
               RETURNING id""",
            (token_hash, expires_at, user_id),
        )

    def consume_password_reset(
        self,
        token_hash: str,
        password_hash: str,
        now: datetime,
    ) -> UserAccount | None:
        """
        Apply a password reset if token_hash matches an unexpired reset token.

        Matching, clearing the token and setting the new password happen in
        one UPDATE, so a token can be used once.

        Returns:
            The updated account, or None if no valid token matched.
        """
        return _to_user(self._db.execute_single(
            f"""UPDATE users
                SET password_hash = %(password_hash)s,
                    last_password_change_at = %(now)s,
                    must_change_password = false,
                    password_reset_token_hash = NULL,
                    password_reset_expires_at = NULL
                WHERE password_reset_token_hash = %(token_hash)s
                  AND password_reset_expires_at > %(now)s
                RETURNING {_USER_COLUMNS}""",
            {"token_hash": token_hash, "password_hash": password_hash, "now": now},
        ))

    def set_email_verification_token(
        self,
        user_id: UUID,
        token_hash: str | None,
        expires_at: datetime | None,
    ) -> None:
        """Store (or with None, clear) the pending email verification token."""
        self._db.execute_returning(
            """UPDATE users
               SET email_verification_token_hash = %s, email_verification_expires_at = %s
               WHERE id = %s
               RETURNING id""",
            (token_hash, expires_at, user_id),
        )

    def consume_email_verification(self, token_hash: str, now: datetime) -> UserAccount | None:
        """Mark the matching account verified and clear the token (single use)."""
        return _to_user(self._db.execute_single(
            f"""UPDATE users
                SET email_verified = true,
                    email_verification_token_hash = NULL,
                    email_verification_expires_at = NULL
                WHERE email_verification_token_hash = %(token_hash)s
                  AND email_verification_expires_at > %(now)s
                RETURNING {_USER_COLUMNS}""",
            {"token_hash": token_hash, "now": now},
        ))

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    def create_api_key(self, key: ApiKey) -> None:
        """Store a new API key record."""
        self._db.execute_returning(
            """INSERT INTO api_keys (id, user_id, name, prefix, key_hash, created_at)
               VALUES (%s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (key.id, key.user_id, key.name, key.prefix, key.key_hash, key.created_at),
        )

    def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        """Find an unrevoked API key by its digest."""
        row = self._db.execute_single(
            """SELECT id, user_id, name, prefix, key_hash, created_at, revoked_at
               FROM api_keys
               WHERE key_hash = %s AND revoked_at IS NULL""",
            (key_hash,),
        )
        return ApiKey.model_validate(row) if row else None

    def revoke_api_key(self, user_id: UUID, key_id: UUID, now: datetime) -> bool:
        """Revoke one of the user's keys. Returns False if not found."""
        rows = self._db.execute_returning(
            """UPDATE api_keys SET revoked_at = %s
               WHERE id = %s AND user_id = %s AND revoked_at IS NULL
               RETURNING id""",
            (now, key_id, user_id),
        )
        return len(rows) > 0
