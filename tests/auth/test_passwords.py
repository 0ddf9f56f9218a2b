"""Tests for auth/passwords.py - policy, bcrypt hashing, token digests."""

import pytest

from auth.exceptions import ValidationFailedError
from auth.passwords import (
    generate_one_time_token,
    hash_password,
    hash_token,
    validate_password_policy,
    verify_password,
)


class TestPasswordPolicy:

    def test_accepts_compliant_password(self):
        validate_password_policy("Secret123")

    @pytest.mark.parametrize(
        "password",
        ["Sh0rt", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"],
    )
    def test_rejects_noncompliant(self, password):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_password_policy(password)
        assert exc_info.value.field == "password"

    def test_rejects_over_72_bytes(self):
        """Multi-byte characters count by encoded length."""
        password = "Aa1" + "é" * 35  # 3 + 70 bytes
        with pytest.raises(ValidationFailedError, match="72 bytes"):
            validate_password_policy(password)

    def test_reports_every_unmet_rule(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_password_policy("abc")
        message = str(exc_info.value)
        assert "8 characters" in message
        assert "uppercase" in message


class TestHashing:

    def test_verify_round_trip(self):
        hashed = hash_password("Secret123", rounds=4)
        assert verify_password("Secret123", hashed)

    def test_wrong_password(self):
        hashed = hash_password("Secret123", rounds=4)
        assert not verify_password("Secret124", hashed)

    def test_hash_is_salted(self):
        assert hash_password("Secret123", rounds=4) != hash_password("Secret123", rounds=4)

    def test_over_long_candidate_is_false_not_error(self):
        hashed = hash_password("Secret123", rounds=4)
        assert not verify_password("A" * 100, hashed)

    def test_corrupt_hash_is_false_not_error(self):
        assert not verify_password("Secret123", "not-a-bcrypt-hash")


class TestTokenDigests:

    def test_digest_is_stable(self):
        assert hash_token("abc") == hash_token("abc")

    def test_digest_is_sha256_hex(self):
        assert len(hash_token("abc")) == 64

    def test_one_time_token_returns_matching_hash(self):
        raw, digest = generate_one_time_token()
        assert hash_token(raw) == digest
        assert raw != digest

    def test_one_time_tokens_unique(self):
        assert generate_one_time_token()[0] != generate_one_time_token()[0]
