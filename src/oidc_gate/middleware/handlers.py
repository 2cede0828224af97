"""Per-route authentication wrappers for Starlette endpoints.

Four variants, differing only in what the wrapped endpoint receives:

- ``authenticate``: ``endpoint(request)``
- ``authenticate_with_params``: ``endpoint(request, **path_params)``
- ``authenticate_user``: ``endpoint(user, request)``
- ``authenticate_user_with_params``: ``endpoint(user, request, **path_params)``

On failure the configured error handler decides: a returned Response is
sent and the endpoint never runs; None lets the endpoint run without an
identity (``user`` is then None).

Usage:
    config = OIDCConfiguration.from_settings()

    async def profile(user: User | None, request: Request) -> Response:
        return JSONResponse({"sub": user.subject})

    app = Starlette(routes=[Route("/me", authenticate_user(config, profile))])
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

from oidc_gate.exceptions import InvalidUserError, OIDCError
from oidc_gate.user import User

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

    from oidc_gate.configuration import OIDCConfiguration
    from oidc_gate.validator import ValidatedToken

    Endpoint = Callable[..., Awaitable[Response]]


async def authenticate_request(
    config: OIDCConfiguration,
    request: Request,
) -> tuple[ValidatedToken | None, Response | None]:
    """Validate the request's ID token.

    On success the token is stored in ``request.state.id_token``.

    Args:
        config: OIDC configuration.
        request: Inbound request.

    Returns:
        ``(token, None)`` on success, ``(None, response)`` when the error
        handler halts, ``(None, None)`` when it lets the request continue.
    """
    try:
        raw_token = config.token_getter(request)
        token = await config.validator.validate(request, raw_token)
    except OIDCError as exc:
        return None, await config.error_handler(exc, request)

    request.state.id_token = token
    return token, None


async def authenticate_user_request(
    config: OIDCConfiguration,
    request: Request,
) -> tuple[User | None, Response | None]:
    """Validate the request's ID token and project it onto a User.

    On success the user is stored in ``request.state.user``.

    Returns:
        Same shape as :func:`authenticate_request`, with a User.
    """
    token, response = await authenticate_request(config, request)
    if token is None:
        return None, response

    try:
        user = User.from_token(token)
    except InvalidUserError as exc:
        return None, await config.error_handler(exc, request)

    request.state.user = user
    return user, None


def authenticate(config: OIDCConfiguration, endpoint: Endpoint) -> Endpoint:
    """Wrap ``endpoint(request)`` with ID token validation."""

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        _, response = await authenticate_request(config, request)
        if response is not None:
            return response
        return await endpoint(request)

    return wrapper


def authenticate_with_params(config: OIDCConfiguration, endpoint: Endpoint) -> Endpoint:
    """Wrap ``endpoint(request, **path_params)`` with ID token validation."""

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        _, response = await authenticate_request(config, request)
        if response is not None:
            return response
        params: dict[str, Any] = dict(request.path_params)
        return await endpoint(request, **params)

    return wrapper


def authenticate_user(config: OIDCConfiguration, endpoint: Endpoint) -> Endpoint:
    """Wrap ``endpoint(user, request)`` with ID token validation."""

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        user, response = await authenticate_user_request(config, request)
        if response is not None:
            return response
        return await endpoint(user, request)

    return wrapper


def authenticate_user_with_params(config: OIDCConfiguration, endpoint: Endpoint) -> Endpoint:
    """Wrap ``endpoint(user, request, **path_params)`` with ID token validation."""

    @functools.wraps(endpoint)
    async def wrapper(request: Request) -> Response:
        user, response = await authenticate_user_request(config, request)
        if response is not None:
            return response
        params: dict[str, Any] = dict(request.path_params)
        return await endpoint(user, request, **params)

    return wrapper
