"""FastAPI dependency functions for the authenticated user.

Provides Depends()-compatible functions reading the User that
OIDCAuthMiddleware published for the current request.

Usage:
    from oidc_gate.dependencies import CurrentUser

    @router.get("/me")
    def me(user: CurrentUser) -> dict[str, str]:
        return {"sub": user.subject}
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends

from oidc_gate.context import get_current_user as _get_user_from_context
from oidc_gate.context import get_optional_user as _get_optional_user_from_context
from oidc_gate.exceptions import AudienceMismatchError, OIDCError
from oidc_gate.middleware.errors import UnauthorizedErrorHandler
from oidc_gate.user import User

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import FastAPI, Request
    from starlette.responses import Response

    from oidc_gate.middleware.errors import ErrorHandler


def get_current_user() -> User:
    """FastAPI dependency that returns the authenticated user.

    Sync function (not async) for minimal overhead.

    Raises:
        NoUserContextError: If called outside an authenticated request.
    """
    return _get_user_from_context()


def get_optional_user() -> User | None:
    """FastAPI dependency that returns the authenticated user, or None."""
    return _get_optional_user_from_context()


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]


def require_audience(client_id: str) -> Callable[..., None]:
    """Factory returning a dependency that requires ``client_id`` in ``aud``.

    For routes that serve only one of several accepted clients.

    Args:
        client_id: Client ID that must be present in the token audience.

    Returns:
        FastAPI dependency raising AudienceMismatchError otherwise.
    """

    def _check_audience(user: Annotated[User, Depends(get_current_user)]) -> None:
        aud = user.claims.get("aud")
        audiences = [aud] if isinstance(aud, str) else list(aud or [])
        if client_id not in audiences:
            raise AudienceMismatchError(
                f"Route requires audience '{client_id}'",
                {"subject": user.subject},
            )

    return _check_audience


def register_exception_handlers(app: FastAPI, error_handler: ErrorHandler | None = None) -> None:
    """Answer OIDCError raised inside endpoints or dependencies like the middleware does.

    Args:
        app: FastAPI application.
        error_handler: Handler to delegate to. Defaults to 401 problem details.
    """
    handler = error_handler or UnauthorizedErrorHandler()

    async def _handle_oidc_error(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, OIDCError):
            raise exc
        response = await handler(exc, request)
        if response is None:
            raise exc
        return response

    app.add_exception_handler(OIDCError, _handle_oidc_error)
