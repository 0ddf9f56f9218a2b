"""Signing and verification of access and refresh tokens.

Access tokens are short-lived and verified statelessly. Refresh tokens are
long-lived, carry a random token id, and are only honoured while their
exact string is stored on the owning account (see SessionManager).
The two kinds use different secrets, so neither can stand in for the other.
"""

import secrets
from datetime import timedelta
from typing import Any
from uuid import UUID

import jwt

from auth.config import AuthConfig, TokenSecrets
from auth.exceptions import TokenExpiredError, TokenInvalidError
from auth.types import RefreshClaims, TokenPair
from utils.timezone import now_utc

ACCESS_KIND = "access"
REFRESH_KIND = "refresh"


class TokenIssuer:
    """Stateless token minting and verification over configured secrets."""

    def __init__(self, token_secrets: TokenSecrets, config: AuthConfig):
        self._access_secret = token_secrets.access_secret.get_secret_value()
        self._refresh_secret = token_secrets.refresh_secret.get_secret_value()
        self._config = config
        self._algorithm = config.jwt_algorithm

    def issue_token_pair(self, user_id: UUID) -> TokenPair:
        """Mint an access token and a refresh token for user_id."""
        now = now_utc()

        access_token = jwt.encode(
            {
                "sub": str(user_id),
                "type": ACCESS_KIND,
                "iat": now,
                "exp": now + timedelta(minutes=self._config.access_token_minutes),
            },
            self._access_secret,
            algorithm=self._algorithm,
        )
        refresh_token = jwt.encode(
            {
                "sub": str(user_id),
                "type": REFRESH_KIND,
                "jti": secrets.token_hex(16),
                "iat": now,
                "exp": now + timedelta(days=self._config.refresh_token_days),
            },
            self._refresh_secret,
            algorithm=self._algorithm,
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._config.access_token_expires_in,
        )

    def verify_access(self, token: str) -> UUID:
        """
        Verify an access token and return its subject.

        Raises:
            TokenExpiredError: Valid signature, past expiry.
            TokenInvalidError: Anything else wrong with it.
        """
        claims = self._decode(token, self._access_secret, ACCESS_KIND)
        return self._subject(claims)

    def verify_refresh(self, token: str) -> RefreshClaims:
        """
        Verify a refresh token's signature, expiry and kind.

        Does not check that the token is still stored on the account.

        Raises:
            TokenExpiredError, TokenInvalidError
        """
        claims = self._decode(token, self._refresh_secret, REFRESH_KIND)
        token_id = claims.get("jti")
        if not isinstance(token_id, str) or not token_id:
            raise TokenInvalidError("Refresh token has no token id")
        return RefreshClaims(user_id=self._subject(claims), token_id=token_id)

    def _decode(self, token: str, secret: str, expected_kind: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat", "type"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise TokenInvalidError(f"Invalid token: {e}") from e

        if claims.get("type") != expected_kind:
            raise TokenInvalidError("Invalid token type")
        return claims

    @staticmethod
    def _subject(claims: dict[str, Any]) -> UUID:
        try:
            return UUID(str(claims["sub"]))
        except (KeyError, ValueError) as e:
            raise TokenInvalidError("Invalid token subject") from e
