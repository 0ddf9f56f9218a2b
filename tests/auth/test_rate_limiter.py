"""Tests for RateLimiter - per-IP throttling of auth endpoints."""

import pytest

from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from auth.rate_limiter import RateLimiter


@pytest.fixture
def config():
    """Test config with low attempts for faster tests."""
    return AuthConfig(
        auth_rate_limit_attempts=3,
        auth_rate_limit_window_minutes=5,
    )


@pytest.fixture
def rate_limiter(valkey, config):
    return RateLimiter(valkey, config)


class TestCheckRateLimit:
    """Test rate limit checking and incrementing."""

    def test_first_attempt_passes(self, rate_limiter):
        rate_limiter.check_rate_limit("login", "10.0.0.1")

    def test_within_limit_passes(self, rate_limiter, config):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

    def test_exceeds_limit_raises(self, rate_limiter, config):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        with pytest.raises(RateLimitedError):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

    def test_error_includes_retry_after(self, rate_limiter, config):
        """Retry-After comes from the remaining window."""
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        with pytest.raises(RateLimitedError) as exc_info:
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        assert exc_info.value.retry_after_seconds == 5 * 60

    def test_ips_tracked_separately(self, rate_limiter, config):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        rate_limiter.check_rate_limit("login", "10.0.0.2")

    def test_actions_tracked_separately(self, rate_limiter, config):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        rate_limiter.check_rate_limit("register", "10.0.0.1")

    def test_unknown_client_shares_bucket(self, rate_limiter, config, valkey):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", None)

        with pytest.raises(RateLimitedError):
            rate_limiter.check_rate_limit("login", None)
        assert "ratelimit:auth:login:unknown" in valkey.values

    def test_window_expiry_reapplied_each_attempt(self, rate_limiter, valkey):
        rate_limiter.check_rate_limit("login", "10.0.0.1")
        assert valkey.ttls["ratelimit:auth:login:10.0.0.1"] == 300


class TestResetAndRemaining:

    def test_remaining_starts_at_limit(self, rate_limiter, config):
        assert rate_limiter.get_remaining_attempts("login", "10.0.0.1") == config.auth_rate_limit_attempts

    def test_remaining_decreases(self, rate_limiter, config):
        rate_limiter.check_rate_limit("login", "10.0.0.1")
        assert rate_limiter.get_remaining_attempts("login", "10.0.0.1") == config.auth_rate_limit_attempts - 1

    def test_remaining_never_negative(self, rate_limiter, config):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")
        with pytest.raises(RateLimitedError):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        assert rate_limiter.get_remaining_attempts("login", "10.0.0.1") == 0

    def test_reset_clears_counter(self, rate_limiter, config):
        for _ in range(config.auth_rate_limit_attempts):
            rate_limiter.check_rate_limit("login", "10.0.0.1")

        rate_limiter.reset_rate_limit("login", "10.0.0.1")

        rate_limiter.check_rate_limit("login", "10.0.0.1")
