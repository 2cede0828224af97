"""Request-level authentication: wrappers, middleware, token extraction, error handling."""

from oidc_gate.middleware.errors import (
    GENERIC_FAILURE_MESSAGE,
    PROBLEM_MEDIA_TYPE,
    ErrorHandler,
    UnauthorizedErrorHandler,
    default_error_handler,
    problem_response,
)
from oidc_gate.middleware.handlers import (
    authenticate,
    authenticate_request,
    authenticate_user,
    authenticate_user_request,
    authenticate_user_with_params,
    authenticate_with_params,
)
from oidc_gate.middleware.oidc_auth import OIDCAuthMiddleware
from oidc_gate.middleware.tokens import TokenGetter, bearer_token_from_header

__all__ = [
    "GENERIC_FAILURE_MESSAGE",
    "PROBLEM_MEDIA_TYPE",
    "ErrorHandler",
    "OIDCAuthMiddleware",
    "TokenGetter",
    "UnauthorizedErrorHandler",
    "authenticate",
    "authenticate_request",
    "authenticate_user",
    "authenticate_user_request",
    "authenticate_user_with_params",
    "authenticate_with_params",
    "bearer_token_from_header",
    "default_error_handler",
    "problem_response",
]
