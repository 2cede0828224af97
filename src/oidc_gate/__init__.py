"""oidc-gate -- OpenID Connect ID token validation for ASGI services.

Resolves issuer signing keys (discovery -> JWKS -> PEM) into a per-issuer
cache that refreshes once on key rotation, validates ID tokens against the
permitted providers, and exposes the result through Starlette wrappers,
middleware and FastAPI dependencies.
"""

from oidc_gate.cache import SigningKeyCache
from oidc_gate.configuration import OIDCConfiguration
from oidc_gate.context import get_current_user, get_optional_user
from oidc_gate.discovery import DiscoveryDocument, DiscoveryProvider
from oidc_gate.exceptions import (
    AudienceMismatchError,
    DecodeError,
    ExpiredTokenError,
    FetchError,
    InvalidAuthorizationHeaderError,
    InvalidUserError,
    IssuerMismatchError,
    KeyEncodingError,
    KeyNotFoundError,
    MissingTokenError,
    OIDCError,
    SignatureError,
    TokenParseError,
    TokenValidationError,
    UnknownIssuerError,
    UnknownKeyError,
)
from oidc_gate.fetch import Fetcher, FetchResponse, HttpxFetcher
from oidc_gate.jwks import JWKSDocument, JWKSProvider
from oidc_gate.keys import KeySet, KeySetResolver, ResolvedKey, encode_jwk
from oidc_gate.lifespan import oidc_lifespan
from oidc_gate.middleware import (
    ErrorHandler,
    OIDCAuthMiddleware,
    TokenGetter,
    authenticate,
    authenticate_user,
    authenticate_user_with_params,
    authenticate_with_params,
    bearer_token_from_header,
)
from oidc_gate.providers import Provider, ProvidersGetter, StaticProvidersGetter
from oidc_gate.settings import OIDCSettings, get_oidc_settings
from oidc_gate.user import User
from oidc_gate.validator import TokenValidator, ValidatedToken
from oidc_gate.verify import PyJWTVerifier, TokenVerifier

__all__ = [
    "AudienceMismatchError",
    "DecodeError",
    "DiscoveryDocument",
    "DiscoveryProvider",
    "ErrorHandler",
    "ExpiredTokenError",
    "FetchError",
    "FetchResponse",
    "Fetcher",
    "HttpxFetcher",
    "InvalidAuthorizationHeaderError",
    "InvalidUserError",
    "IssuerMismatchError",
    "JWKSDocument",
    "JWKSProvider",
    "KeyEncodingError",
    "KeyNotFoundError",
    "KeySet",
    "KeySetResolver",
    "MissingTokenError",
    "OIDCAuthMiddleware",
    "OIDCConfiguration",
    "OIDCError",
    "OIDCSettings",
    "Provider",
    "ProvidersGetter",
    "PyJWTVerifier",
    "ResolvedKey",
    "SignatureError",
    "SigningKeyCache",
    "StaticProvidersGetter",
    "TokenGetter",
    "TokenParseError",
    "TokenValidationError",
    "TokenValidator",
    "TokenVerifier",
    "UnknownIssuerError",
    "UnknownKeyError",
    "User",
    "ValidatedToken",
    "authenticate",
    "authenticate_user",
    "authenticate_user_with_params",
    "authenticate_with_params",
    "bearer_token_from_header",
    "encode_jwk",
    "get_current_user",
    "get_oidc_settings",
    "get_optional_user",
    "oidc_lifespan",
]
