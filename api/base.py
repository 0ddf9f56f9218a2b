"""Unified API response format and error codes."""

from typing import Any

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """
    Response envelope for all API endpoints.

    Success: {success: true, message, data}
    Failure: {success: false, message, code}
    """

    success: bool
    message: str | None = None
    data: Any | None = None
    code: str | None = Field(default=None, description="Machine-readable error code")

    def to_json(self) -> dict[str, Any]:
        """Serialize, omitting fields that do not belong to this envelope kind."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def success_response(data: Any = None, message: str | None = None) -> APIResponse:
    """Create a success response."""
    return APIResponse(success=True, message=message, data=data)


def error_response(code: str, message: str) -> APIResponse:
    """Create an error response."""
    return APIResponse(success=False, message=message, code=code)


class ErrorCodes:
    """Standard error codes. Clients switch on these, never on messages."""

    # Authentication
    NO_TOKEN = "NO_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    NO_REFRESH_TOKEN = "NO_REFRESH_TOKEN"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"

    # Authorization
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    DEPARTMENT_RESTRICTED = "DEPARTMENT_RESTRICTED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    ACCESS_DENIED = "ACCESS_DENIED"

    # Account
    EMAIL_EXISTS = "EMAIL_EXISTS"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"
    EMAIL_SEND_FAILED = "EMAIL_SEND_FAILED"

    # Resource / validation
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
