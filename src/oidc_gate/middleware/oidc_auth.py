"""Application-wide ID token authentication middleware.

Applies the ``authenticate_user`` decision to every request except excluded
paths, and publishes the User through the user ContextVar for the duration
of the request.

Design decisions:
- Use BaseHTTPMiddleware (not pure ASGI). Overhead is negligible next to
  token verification.
- Return the error handler's Response directly (not raise HTTPException)
  because BaseHTTPMiddleware dispatch cannot propagate exceptions through
  the ASGI stack.
- The configuration may be passed in, or picked up from ``app.state.oidc``
  where ``oidc_lifespan`` stores it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware

from oidc_gate.context import clear_user_context, set_user_context
from oidc_gate.middleware.errors import problem_response
from oidc_gate.middleware.handlers import authenticate_user_request

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

    from oidc_gate.configuration import OIDCConfiguration

# Default paths excluded from ID token validation.
_DEFAULT_EXCLUDED_PREFIXES = (
    "/health",
    "/ready",
    "/docs",
    "/openapi.json",
    "/redoc",
)


class OIDCAuthMiddleware(BaseHTTPMiddleware):
    """ID token validation middleware.

    Request flow:
    1. Check if path is excluded -> skip auth
    2. Resolve configuration (constructor argument, else app.state.oidc)
    3. Validate the token and build the User
    4. Store token and user in request.state, user in the ContextVar
    5. Call next middleware/handler

    Args:
        app: ASGI application (passed by Starlette).
        config: OIDC configuration. None to read ``app.state.oidc``.
        excluded_prefixes: Path prefixes to skip auth on.
            Defaults to /health, /ready, /docs, /openapi.json, /redoc.
    """

    def __init__(
        self,
        app: Any,
        config: OIDCConfiguration | None = None,
        excluded_prefixes: tuple[str, ...] | None = None,
    ) -> None:
        super().__init__(app)
        self._config = config
        self._excluded_prefixes = (
            excluded_prefixes if excluded_prefixes is not None else _DEFAULT_EXCLUDED_PREFIXES
        )

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self._excluded_prefixes):
            return await call_next(request)

        config = self._config or getattr(request.app.state, "oidc", None)
        if config is None:
            return problem_response(
                request,
                503,
                "service_unavailable",
                "Authentication service not configured",
            )

        user, response = await authenticate_user_request(config, request)
        if response is not None:
            return response
        if user is None:
            return await call_next(request)

        user_token = set_user_context(user)
        try:
            return await call_next(request)
        finally:
            clear_user_context(user_token)
