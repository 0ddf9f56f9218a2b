"""
Valkey (Redis-compatible) client for auth rate-limit counters.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        count = client.incr_with_expiry("ratelimit:login:10.0.0.1", 900)
        client.ttl("ratelimit:login:10.0.0.1")
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """Get value by key. None if missing."""
        return self._client.get(key)

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        return self._client.delete(key) > 0

    def ttl(self, key: str) -> int:
        """
        Get remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def incr_with_expiry(self, key: str, expire_seconds: int) -> int:
        """
        Increment key by 1 and (re)set its TTL in one round trip.

        MULTI/EXEC keeps the counter from ever existing without a TTL.
        Returns the new value.
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, expire_seconds)
        count, _ = pipe.execute()
        return int(count)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
