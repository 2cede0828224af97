"""Translation of validation errors into HTTP responses.

The error handler is the single place where an OIDCError becomes an HTTP
outcome. It returns the Response to send, which halts the request, or None
to let the wrapped handler run without an identity.

The default handler answers every error kind with 401 Unauthorized:
RFC 7807 problem details body plus RFC 6750 WWW-Authenticate header. Only
token validation errors describe themselves to the client; key resolution
failures get a fixed message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from starlette.responses import JSONResponse

from oidc_gate.exceptions import TokenValidationError

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

    from oidc_gate.exceptions import OIDCError

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

_TITLE_MAP = {
    401: "Unauthorized",
    403: "Forbidden",
    503: "Service Unavailable",
}

# Sent instead of the message of key resolution errors, which names
# upstream URLs, HTTP statuses and raw JWK content.
GENERIC_FAILURE_MESSAGE = "Token validation failed"


def _header_safe(text: str) -> str:
    """Reduce ``text`` to printable ASCII usable inside a quoted-string."""
    return "".join(
        "'" if char == '"' else char
        for char in text
        if " " <= char <= "~" and char != "\\"
    )


@runtime_checkable
class ErrorHandler(Protocol):
    """Decides the HTTP outcome of a failed validation.

    Returns the response to send (halting the request), or None to continue.
    """

    async def __call__(self, error: OIDCError, request: Request) -> Response | None: ...


def problem_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    auth_error: str = "invalid_token",
    realm: str = "API",
) -> JSONResponse:
    """Build RFC 7807 + RFC 6750 compliant error response.

    Args:
        request: Current request (for instance path).
        status_code: HTTP status code.
        error_code: Machine-readable error code (SNAKE_CASE or snake_case).
        message: Human-readable error description.
        auth_error: RFC 6750 error code for WWW-Authenticate.
        realm: Protection realm for WWW-Authenticate.

    Returns:
        JSONResponse with problem details and WWW-Authenticate header
        (for 401).
    """
    headers: dict[str, str] = {}
    if status_code == 401:
        headers["WWW-Authenticate"] = (
            f'Bearer realm="{_header_safe(realm)}", error="{auth_error}", '
            f'error_description="{_header_safe(message)}"'
        )

    slug = error_code.lower().replace("_", "-")
    return JSONResponse(
        status_code=status_code,
        content={
            "type": f"/errors/{slug}",
            "title": _TITLE_MAP.get(status_code, "Error"),
            "status": status_code,
            "detail": message,
            "error_code": error_code.upper(),
            "instance": str(request.url.path),
        },
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )


class UnauthorizedErrorHandler:
    """Default ErrorHandler: 401 for every error kind, always halting.

    Args:
        realm: Realm advertised in WWW-Authenticate.
    """

    def __init__(self, realm: str = "API") -> None:
        self._realm = realm

    async def __call__(self, error: OIDCError, request: Request) -> Response | None:
        logger.info(
            "auth_validation_failed",
            extra={
                "error_code": error.error_code,
                "error": str(error),
                "path": request.url.path,
                "method": request.method,
            },
        )
        if isinstance(error, TokenValidationError):
            auth_error, message = error.auth_error, error.message
        else:
            auth_error, message = "invalid_token", GENERIC_FAILURE_MESSAGE
        return problem_response(
            request,
            401,
            error.error_code,
            message,
            auth_error=auth_error,
            realm=self._realm,
        )


default_error_handler = UnauthorizedErrorHandler()
