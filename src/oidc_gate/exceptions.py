"""Error hierarchy for ID token validation and signing key resolution.

Every error carries a machine-readable ``error_code`` and a structured
``context`` dict so the middleware layer can translate it into an HTTP
response and log it without string parsing.

Key resolution errors (``FetchError``, ``DecodeError``, ``KeyEncodingError``,
``KeyNotFoundError``) describe infrastructure problems. Token validation
errors (``TokenValidationError`` and subclasses) describe what is wrong with
the presented token and carry an RFC 6750 ``auth_error`` code.

Example:
    >>> raise UnknownIssuerError("https://evil.example.com")
    UnknownIssuerError: Token issuer is not permitted (issuer=https://evil.example.com)
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "AudienceMismatchError",
    "DecodeError",
    "ExpiredTokenError",
    "FetchError",
    "InvalidAuthorizationHeaderError",
    "InvalidUserError",
    "IssuerMismatchError",
    "KeyEncodingError",
    "KeyNotFoundError",
    "MissingTokenError",
    "OIDCError",
    "SignatureError",
    "TokenParseError",
    "TokenValidationError",
    "UnknownIssuerError",
    "UnknownKeyError",
]


class OIDCError(Exception):
    """Base class for all oidc_gate errors.

    Attributes:
        error_code: Machine-readable error code for client handling.
        message: Human-readable error description.
        context: Structured debugging information (issuer, kid, url).
    """

    error_code: str = "OIDC_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """String representation including context for logging."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class FetchError(OIDCError):
    """Raised when a discovery or JWKS document cannot be fetched.

    Covers transport failures, timeouts and non-2xx responses.

    Attributes:
        url: URL that was being fetched.
        status_code: HTTP status when a response was received, else None.
    """

    error_code: str = "FETCH_FAILED"

    def __init__(
        self,
        url: str,
        reason: str,
        status_code: int | None = None,
        **extra_context: Any,
    ) -> None:
        self.url = url
        self.status_code = status_code
        context: dict[str, Any] = {"url": url, **extra_context}
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(f"Failed to fetch {url}: {reason}", context)


class DecodeError(OIDCError):
    """Raised when a discovery or JWKS document is malformed."""

    error_code: str = "DECODE_FAILED"

    def __init__(self, url: str, reason: str, **extra_context: Any) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Malformed document at {url}: {reason}", {"url": url, **extra_context})


class KeyEncodingError(OIDCError):
    """Raised (or reported) when a JWK cannot be turned into a public key.

    Scoped to one key: ``kid`` names it, or ``index`` gives its position in
    the JWKS document when the entry has no usable kid.
    """

    error_code: str = "KEY_ENCODING_FAILED"

    def __init__(
        self,
        issuer: str,
        kid: str | None,
        reason: str,
        index: int | None = None,
    ) -> None:
        self.issuer = issuer
        self.kid = kid
        self.reason = reason
        self.index = index
        label = kid if kid is not None else f"#{index}"
        context: dict[str, Any] = {"issuer": issuer, "kid": kid}
        if index is not None:
            context["index"] = index
        super().__init__(f"Cannot encode signing key {label}: {reason}", context)


class KeyNotFoundError(OIDCError):
    """Raised when a kid is absent from an issuer's key set even after refresh."""

    error_code: str = "KEY_NOT_FOUND"

    def __init__(self, issuer: str, kid: str) -> None:
        self.issuer = issuer
        self.kid = kid
        super().__init__("Signing key not found", {"issuer": issuer, "kid": kid})


class TokenValidationError(OIDCError):
    """Base class for errors describing an unacceptable ID token.

    Maps to HTTP 401 Unauthorized under the default error handler.

    Attributes:
        auth_error: RFC 6750 error code for the WWW-Authenticate header.
    """

    error_code: str = "TOKEN_INVALID"
    auth_error: str = "invalid_token"


class TokenParseError(TokenValidationError):
    """Raised when the token (or the header carrying it) is structurally malformed."""

    error_code: str = "INVALID_TOKEN"


class MissingTokenError(TokenParseError):
    """Raised when the request carries no ID token."""

    error_code: str = "MISSING_TOKEN"
    auth_error: str = "invalid_request"


class InvalidAuthorizationHeaderError(TokenParseError):
    """Raised when the Authorization header is not ``Bearer <token>``."""

    error_code: str = "INVALID_FORMAT"
    auth_error: str = "invalid_request"


class InvalidUserError(TokenParseError):
    """Raised when a validated token cannot be projected onto a User."""

    error_code: str = "INVALID_USER"


class UnknownIssuerError(TokenValidationError):
    """Raised when the token's issuer is not among the permitted providers."""

    error_code: str = "UNKNOWN_ISSUER"

    def __init__(self, issuer: str) -> None:
        self.issuer = issuer
        super().__init__("Token issuer is not permitted", {"issuer": issuer})


class UnknownKeyError(TokenValidationError):
    """Raised when the token's kid cannot be resolved for its issuer."""

    error_code: str = "UNKNOWN_KEY"

    def __init__(self, issuer: str, kid: str) -> None:
        self.issuer = issuer
        self.kid = kid
        super().__init__("Token signing key is unknown", {"issuer": issuer, "kid": kid})


class SignatureError(TokenValidationError):
    """Raised when cryptographic verification of the token fails."""

    error_code: str = "INVALID_SIGNATURE"


class ExpiredTokenError(TokenValidationError):
    """Raised when the token is expired, not yet valid, or carries no expiry."""

    error_code: str = "TOKEN_EXPIRED"


class IssuerMismatchError(TokenValidationError):
    """Raised when the verified ``iss`` claim does not match exactly one provider."""

    error_code: str = "INVALID_ISSUER"


class AudienceMismatchError(TokenValidationError):
    """Raised when the ``aud`` claim shares no value with the expected client IDs."""

    error_code: str = "INVALID_AUDIENCE"
