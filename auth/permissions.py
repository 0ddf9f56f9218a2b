"""Authorization checks downstream of AuthMiddleware.

The require_* factories return FastAPI dependencies:

    @router.get("/reports", dependencies=[Depends(require_roles(UserRole.ADMIN))])

check_resource_ownership is a plain function for use inside handlers once
the resource is loaded.
"""

from typing import Any, Callable, Iterable

from fastapi import Request

from auth.exceptions import (
    AuthenticationRequiredError,
    EmailVerificationRequiredError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from auth.types import Department, UserAccount, UserRole

# Relationship fields that grant access to someone other than the owner
SPECIAL_ACCESS_FIELDS = ("watchers", "participants", "assignee", "reporter")


def current_user(request: Request) -> UserAccount:
    """Dependency: the account AuthMiddleware attached to the request."""
    user = getattr(request.state, "user", None)
    if user is None:
        # Route was registered as public but asks for a user
        raise AuthenticationRequiredError("Authentication required")
    return user


def require_roles(*roles: UserRole) -> Callable[[Request], UserAccount]:
    allowed = set(roles)

    def dependency(request: Request) -> UserAccount:
        user = current_user(request)
        if user.role not in allowed:
            raise PermissionDeniedError(
                "Insufficient permissions for this action",
                code="INSUFFICIENT_PERMISSIONS",
            )
        return user

    return dependency


def require_departments(*departments: Department) -> Callable[[Request], UserAccount]:
    """Admins pass regardless of department."""
    allowed = set(departments)

    def dependency(request: Request) -> UserAccount:
        user = current_user(request)
        if user.role != UserRole.ADMIN and user.department not in allowed:
            raise PermissionDeniedError(
                "Access restricted to specific departments",
                code="DEPARTMENT_RESTRICTED",
            )
        return user

    return dependency


def require_verified_email(request: Request) -> UserAccount:
    user = current_user(request)
    if not user.email_verified:
        raise EmailVerificationRequiredError("Email verification required")
    return user


def _field(resource: Any, name: str) -> Any:
    if isinstance(resource, dict):
        return resource.get(name)
    return getattr(resource, name, None)


def _as_ids(value: Any) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, (list, tuple, set, frozenset)):
        return {str(v) for v in value if v is not None}
    return {str(value)}


def has_special_access(resource: Any, user: UserAccount, fields: Iterable[str] = SPECIAL_ACCESS_FIELDS) -> bool:
    """True if the user appears in any relationship field (scalar or list)."""
    user_id = str(user.id)
    return any(user_id in _as_ids(_field(resource, name)) for name in fields)


def check_resource_ownership(resource: Any, user: UserAccount, owner_field: str = "owner") -> None:
    """
    Allow access to the owner, admins, and users with special access.

    Accepts a mapping or any object with attributes.

    Raises:
        ResourceNotFoundError: resource is None.
        PermissionDeniedError: ACCESS_DENIED for everyone else.
    """
    if resource is None:
        raise ResourceNotFoundError("Resource not found")

    if user.role == UserRole.ADMIN:
        return

    if str(user.id) in _as_ids(_field(resource, owner_field)):
        return

    if has_special_access(resource, user):
        return

    raise PermissionDeniedError(
        "Access denied. You can only access your own resources.",
        code="ACCESS_DENIED",
    )
