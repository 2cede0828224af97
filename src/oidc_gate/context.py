"""Authenticated user context for the current request.

A ContextVar holds the User set by OIDCAuthMiddleware, so handlers and
services deep in the call stack can read the identity without it being
passed explicitly.

Usage:
    from oidc_gate.context import get_current_user

    user = get_current_user()  # Raises if no authenticated user
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextvars import Token

    from oidc_gate.user import User

_user_context: ContextVar[User | None] = ContextVar("oidc_user_context", default=None)


class NoUserContextError(RuntimeError):
    """Raised when the user context is accessed outside an authenticated request."""

    def __init__(self) -> None:
        super().__init__(
            "No authenticated user available. "
            "Ensure this code is called within a request handled by OIDCAuthMiddleware."
        )


def set_user_context(user: User) -> Token[User | None]:
    """Set the authenticated user for the current request.

    Args:
        user: User built from the validated ID token.

    Returns:
        Token for resetting the context.
    """
    return _user_context.set(user)


def clear_user_context(token: Token[User | None]) -> None:
    """Reset the user context using the provided token.

    Called in middleware finally block after request completes.
    """
    _user_context.reset(token)


def get_current_user() -> User:
    """Get the authenticated user of the current request.

    Raises:
        NoUserContextError: If called outside an authenticated request.
    """
    user = _user_context.get()
    if user is None:
        raise NoUserContextError()
    return user


def get_optional_user() -> User | None:
    """Get the authenticated user if available, or None."""
    return _user_context.get()
