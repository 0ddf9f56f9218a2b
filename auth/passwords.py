"""Password hashing, password policy, and one-time token digests."""

import hashlib
import re
import secrets

import bcrypt

from auth.exceptions import ValidationFailedError

# bcrypt only reads the first 72 bytes of a secret
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8


def validate_password_policy(password: str) -> None:
    """
    Check a new password against the account password policy.

    Requirements:
    - At least 8 characters
    - At least one uppercase letter, one lowercase letter, and one digit
    - At most 72 bytes UTF-8 encoded (bcrypt limit; rejected, never truncated)

    Raises:
        ValidationFailedError: Listing every unmet requirement
    """
    errors = []

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not (re.search(r"[A-Z]", password) and re.search(r"[a-z]", password) and re.search(r"\d", password)):
        errors.append(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(f"Password exceeds maximum length of {MAX_PASSWORD_BYTES} bytes")

    if errors:
        raise ValidationFailedError("; ".join(errors), field="password")


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password with bcrypt. Caller validates the policy first."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Compare a candidate password with a stored bcrypt hash.

    Over-long candidates and corrupt hashes compare False rather than raise.
    """
    candidate = password.encode("utf-8")
    if len(candidate) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))
    except ValueError:
        return False


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest used to store one-time tokens and API keys."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_one_time_token() -> tuple[str, str]:
    """
    Create a verification/reset token.

    Returns:
        (raw_token, token_hash) - email the raw token, store only the hash.
    """
    raw = secrets.token_hex(32)
    return raw, hash_token(raw)
