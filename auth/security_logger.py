"""Security event logging for auth audit trail.

Append-only log to security_events table (no RLS). Events that indicate
an attack or a lock also go to the application log at WARNING.
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    USER_REGISTERED = "user_registered"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_BLOCKED_LOCKED = "login_blocked_locked"
    LOGIN_BLOCKED_INACTIVE = "login_blocked_inactive"
    ACCOUNT_LOCKED = "account_locked"
    TOKEN_REFRESHED = "token_refreshed"
    REFRESH_TOKEN_REUSE = "refresh_token_reuse"
    LOGGED_OUT = "logged_out"
    LOGGED_OUT_ALL = "logged_out_all"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFIED = "email_verified"
    API_KEY_CREATED = "api_key_created"
    API_KEY_REVOKED = "api_key_revoked"
    RATE_LIMITED = "rate_limited"


_WARN_EVENTS = {
    SecurityEvent.ACCOUNT_LOCKED,
    SecurityEvent.LOGIN_BLOCKED_LOCKED,
    SecurityEvent.REFRESH_TOKEN_REUSE,
    SecurityEvent.RATE_LIMITED,
}


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        if event in _WARN_EVENTS:
            logger.warning(
                f"Security event {event.value}: user_id={user_id} email={email} "
                f"ip={ip_address} details={details}"
            )

        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, email, user_id, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                email,
                str(user_id) if user_id else None,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )

    def get_recent_events(
        self,
        email: str | None = None,
        user_id: UUID | None = None,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query recent security events with optional filters."""
        conditions = []
        params = []

        if email:
            conditions.append("email = %s")
            params.append(email)

        if user_id:
            conditions.append("user_id = %s")
            params.append(str(user_id))

        if event_type:
            conditions.append("event_type = %s")
            params.append(event_type.value)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        params.append(limit)

        return self._db.execute(
            f"""SELECT id, event_type, email, user_id, ip_address, user_agent, details, created_at
                FROM security_events
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s""",
            tuple(params),
        )
