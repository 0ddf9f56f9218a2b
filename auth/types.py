"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class UserRole(str, Enum):
    """Authorization role. ADMIN bypasses ownership checks."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"


class Department(str, Enum):
    """Organizational department, used for department-restricted routes."""

    SALES = "sales"
    MARKETING = "marketing"
    SUPPORT = "support"
    MANAGEMENT = "management"
    OTHER = "other"


class RefreshTokenRecord(BaseModel):
    """A refresh token currently valid for an account (stored as a digest)."""

    token_hash: str
    issued_at: datetime


class LoginAttempt(BaseModel):
    """One entry of an account's bounded login history."""

    ip_address: str | None = None
    user_agent: str | None = None
    success: bool
    attempted_at: datetime


class UserAccount(BaseModel):
    """
    A registered user as stored, including credential and lockout state.

    Never serialize this outward; use PublicUser.
    """

    id: UUID
    email: EmailStr
    first_name: str
    last_name: str
    password_hash: str
    role: UserRole = UserRole.USER
    department: Department = Department.SALES
    is_active: bool = True
    email_verified: bool = False
    failed_login_count: int = Field(default=0, ge=0)
    locked_until: datetime | None = None
    last_login_at: datetime | None = None
    last_password_change_at: datetime | None = None
    must_change_password: bool = False
    email_verification_token_hash: str | None = None
    email_verification_expires_at: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    def is_locked(self, now: datetime) -> bool:
        """True while a lock is set and still in the future."""
        return self.locked_until is not None and self.locked_until > now

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CamelModel(BaseModel):
    """Base for payloads exchanged with the browser client (camelCase JSON)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublicUser(CamelModel):
    """Sanitized account projection returned to clients."""

    id: UUID
    email: EmailStr
    first_name: str
    last_name: str
    full_name: str
    role: UserRole
    department: Department
    is_active: bool
    email_verified: bool
    must_change_password: bool
    last_login_at: datetime | None
    created_at: datetime

    @classmethod
    def from_account(cls, account: UserAccount) -> "PublicUser":
        return cls(
            id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            full_name=account.full_name,
            role=account.role,
            department=account.department,
            is_active=account.is_active,
            email_verified=account.email_verified,
            must_change_password=account.must_change_password,
            last_login_at=account.last_login_at,
            created_at=account.created_at,
        )


class TokenPair(BaseModel):
    """Freshly issued access + refresh tokens."""

    access_token: str
    refresh_token: str
    expires_in: str = Field(..., description="Access token lifetime, e.g. '15m'")


class RefreshClaims(BaseModel):
    """Verified contents of a refresh token."""

    user_id: UUID
    token_id: str


class SessionResult(BaseModel):
    """Outcome of login or registration."""

    user: UserAccount
    tokens: TokenPair


class ApiKey(BaseModel):
    """Stored API key record. The raw key is never persisted."""

    id: UUID
    user_id: UUID
    name: str
    prefix: str
    key_hash: str
    created_at: datetime
    revoked_at: datetime | None = None


class CreatedApiKey(CamelModel):
    """Response for a newly created key; the only time the raw key is shown."""

    id: UUID
    name: str
    prefix: str
    key: str
    created_at: datetime


# Request payloads


class RegisterRequest(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    password: str = Field(..., min_length=1)


class CreateApiKeyRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
