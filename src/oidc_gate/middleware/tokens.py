"""Extraction of the raw ID token from an inbound request."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from oidc_gate.exceptions import InvalidAuthorizationHeaderError, MissingTokenError

if TYPE_CHECKING:
    from starlette.requests import Request


@runtime_checkable
class TokenGetter(Protocol):
    """Returns the raw ID token carried by a request.

    Implementations raise MissingTokenError when no token is present and
    InvalidAuthorizationHeaderError when the carrier is malformed.
    """

    def __call__(self, request: Request) -> str: ...


def bearer_token_from_header(request: Request) -> str:
    """Read the token from ``Authorization: Bearer <token>``.

    The scheme is matched case-insensitively (RFC 7235).

    Args:
        request: Inbound request.

    Returns:
        The raw token.

    Raises:
        MissingTokenError: If the header is absent or the token is empty.
        InvalidAuthorizationHeaderError: If the header is not a Bearer credential.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise MissingTokenError("Authorization header is required")

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        raise InvalidAuthorizationHeaderError("Authorization header must use Bearer scheme")

    token = token.strip()
    if not token:
        raise MissingTokenError("Bearer token is empty")
    if " " in token:
        raise InvalidAuthorizationHeaderError("Bearer token must not contain spaces")
    return token
