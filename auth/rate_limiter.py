"""Rate limiting for unauthenticated auth endpoints.

Uses Valkey with sliding window TTL - each attempt resets the expiry.
Clients hammering login/register/forgot-password hit an ever-extending
lockout. Keys are per action and per client IP.
"""

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError


class RateLimiter:
    """Per-IP rate limiting for auth actions using Valkey."""

    KEY_PREFIX = "ratelimit:auth:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.auth_rate_limit_window_minutes * 60

    def _key(self, action: str, client_id: str) -> str:
        """Generate rate limit key for an action and client."""
        return f"{self.KEY_PREFIX}{action}:{client_id}"

    def check_rate_limit(self, action: str, client_id: str | None) -> None:
        """Check rate limit and increment counter.

        Requests without a resolvable client address share one bucket.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        key = self._key(action, client_id or "unknown")

        count = self._valkey.incr_with_expiry(key, self._window_seconds)

        if count > self._config.auth_rate_limit_attempts:
            ttl = self._valkey.ttl(key)
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))

    def reset_rate_limit(self, action: str, client_id: str | None) -> None:
        """Reset the counter (after a successful login)."""
        self._valkey.delete(self._key(action, client_id or "unknown"))

    def get_remaining_attempts(self, action: str, client_id: str | None) -> int:
        """Get remaining attempts before rate limit."""
        current = self._valkey.get(self._key(action, client_id or "unknown"))

        if current is None:
            return self._config.auth_rate_limit_attempts

        remaining = self._config.auth_rate_limit_attempts - int(current)
        return max(remaining, 0)
