"""Propagate the authenticated principal through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from auth.types import UserAccount

_current_user: "ContextVar[UserAccount | None]" = ContextVar("current_user", default=None)


def get_current_user() -> "UserAccount":
    """
    Get the authenticated user for this request.

    Raises RuntimeError if no user context is set. Code that needs a
    principal outside an authenticated request is a bug.
    """
    user = _current_user.get()
    if user is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an authenticated request."
        )
    return user


def get_current_user_id() -> UUID:
    return get_current_user().id


def set_current_user(user: "UserAccount") -> None:
    """Called by AuthMiddleware once the request is authenticated."""
    _current_user.set(user)


def clear_current_user() -> None:
    """Called by AuthMiddleware in a finally block after the request."""
    _current_user.set(None)


@contextmanager
def user_context(user: "UserAccount"):
    """
    Temporarily act as `user` (tests, background jobs).

    Example:
        with user_context(account):
            check_resource_ownership(deal, get_current_user())
    """
    previous = _current_user.get()
    set_current_user(user)
    try:
        yield user
    finally:
        if previous is None:
            clear_current_user()
        else:
            set_current_user(previous)
