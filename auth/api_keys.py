"""API keys for programmatic access.

A key is shown to its owner exactly once at creation. Only its SHA-256
digest and a short display prefix are stored; lookups hash the presented
key and match the digest.
"""

import logging
import secrets
from uuid import UUID, uuid4

from auth.database import AuthDatabase
from auth.exceptions import AccountDeactivatedError, InvalidApiKeyError, ResourceNotFoundError
from auth.passwords import hash_token
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import ApiKey, CreatedApiKey, UserAccount
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "crm_api_"
# Characters of the raw key kept for display ("crm_api_1a2b3c4d")
DISPLAY_PREFIX_LENGTH = len(API_KEY_PREFIX) + 8


class ApiKeyService:
    """Create, revoke and resolve API keys."""

    def __init__(self, auth_db: AuthDatabase, security_logger: SecurityLogger):
        self._auth_db = auth_db
        self._security_logger = security_logger

    def create_key(self, user: UserAccount, name: str) -> CreatedApiKey:
        raw_key = f"{API_KEY_PREFIX}{secrets.token_hex(32)}"
        record = ApiKey(
            id=uuid4(),
            user_id=user.id,
            name=name.strip(),
            prefix=raw_key[:DISPLAY_PREFIX_LENGTH],
            key_hash=hash_token(raw_key),
            created_at=now_utc(),
        )
        self._auth_db.create_api_key(record)

        self._security_logger.log(
            SecurityEvent.API_KEY_CREATED,
            email=user.email,
            user_id=user.id,
            details={"key_id": str(record.id), "name": record.name},
        )
        logger.info(f"API key {record.prefix} created for user: {user.email}")

        return CreatedApiKey(
            id=record.id,
            name=record.name,
            prefix=record.prefix,
            key=raw_key,
            created_at=record.created_at,
        )

    def revoke_key(self, user: UserAccount, key_id: UUID) -> None:
        """Raises ResourceNotFoundError if the user has no such active key."""
        if not self._auth_db.revoke_api_key(user.id, key_id, now_utc()):
            raise ResourceNotFoundError("API key not found")

        self._security_logger.log(
            SecurityEvent.API_KEY_REVOKED,
            email=user.email,
            user_id=user.id,
            details={"key_id": str(key_id)},
        )

    def authenticate(self, raw_key: str) -> UserAccount:
        """
        Resolve a presented API key to its owner.

        Raises:
            InvalidApiKeyError: Wrong format, unknown or revoked.
            AccountDeactivatedError: Owner inactive.
        """
        if not raw_key.startswith(API_KEY_PREFIX):
            raise InvalidApiKeyError("Invalid API key")

        record = self._auth_db.get_api_key_by_hash(hash_token(raw_key))
        if record is None:
            raise InvalidApiKeyError("Invalid API key")

        user = self._auth_db.get_user_by_id(record.user_id)
        if user is None:
            raise InvalidApiKeyError("Invalid API key")
        if not user.is_active:
            raise AccountDeactivatedError("Account is deactivated")
        return user
