"""Wiring of the validation pipeline.

OIDCConfiguration bundles the TokenValidator with the request-level
collaborators (token getter, error handler). Build it once at application
startup and share it between all routes: the signing key cache lives inside.

Every collaborator is passed explicitly. The fetcher given to
``from_settings`` is handed to both document providers, so overriding the
transport never requires reaching into the pipeline after construction.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from oidc_gate.cache import SigningKeyCache
from oidc_gate.discovery import DiscoveryProvider
from oidc_gate.fetch import HttpxFetcher
from oidc_gate.jwks import JWKSProvider
from oidc_gate.keys import KeySetResolver
from oidc_gate.middleware.errors import UnauthorizedErrorHandler
from oidc_gate.middleware.tokens import bearer_token_from_header
from oidc_gate.providers import StaticProvidersGetter
from oidc_gate.settings import get_oidc_settings
from oidc_gate.validator import TokenValidator
from oidc_gate.verify import PyJWTVerifier

if TYPE_CHECKING:
    from collections.abc import Callable

    from oidc_gate.fetch import Fetcher
    from oidc_gate.middleware.errors import ErrorHandler
    from oidc_gate.middleware.tokens import TokenGetter
    from oidc_gate.providers import ProvidersGetter
    from oidc_gate.settings import OIDCSettings
    from oidc_gate.verify import TokenVerifier


class OIDCConfiguration:
    """Entities needed to authenticate requests with ID tokens.

    Args:
        validator: Token validation pipeline.
        token_getter: Extracts the raw token from a request.
            Defaults to the Authorization Bearer header.
        error_handler: Decides the HTTP outcome of failures.
            Defaults to 401 problem details.
        fetcher: Fetcher to close on shutdown, when this configuration owns it.
    """

    def __init__(
        self,
        validator: TokenValidator,
        token_getter: TokenGetter | None = None,
        error_handler: ErrorHandler | None = None,
        fetcher: HttpxFetcher | None = None,
    ) -> None:
        self.validator = validator
        self.token_getter: TokenGetter = token_getter or bearer_token_from_header
        self.error_handler: ErrorHandler = error_handler or UnauthorizedErrorHandler()
        self._owned_fetcher = fetcher

    @classmethod
    def from_settings(
        cls,
        settings: OIDCSettings | None = None,
        *,
        fetcher: Fetcher | None = None,
        verifier: TokenVerifier | None = None,
        providers_getter: ProvidersGetter | None = None,
        token_getter: TokenGetter | None = None,
        error_handler: ErrorHandler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> OIDCConfiguration:
        """Build the full pipeline, defaulting every collaborator from settings.

        Args:
            settings: OIDC settings. Loaded from the environment if omitted.
            fetcher: HTTP transport. Defaults to an owned HttpxFetcher.
            verifier: Signature verifier. Defaults to PyJWTVerifier.
            providers_getter: Permitted providers per request. Defaults to
                the static provider built from ``settings``.
            token_getter: Token extraction. Defaults to the Bearer header.
            error_handler: Failure handling. Defaults to 401 problem details.
            clock: Time source for exp/nbf checks.

        Returns:
            Ready-to-use OIDCConfiguration.
        """
        if settings is None:
            settings = get_oidc_settings()

        owned_fetcher: HttpxFetcher | None = None
        if fetcher is None:
            owned_fetcher = HttpxFetcher(timeout=settings.http_timeout)
            fetcher = owned_fetcher

        resolver = KeySetResolver(
            DiscoveryProvider(fetcher, settings.discovery_path),
            JWKSProvider(fetcher),
        )
        validator = TokenValidator(
            providers_getter or StaticProvidersGetter(settings.providers()),
            SigningKeyCache(resolver, min_refresh_interval=settings.min_refresh_interval),
            verifier or PyJWTVerifier(settings.algorithms),
            leeway=settings.leeway,
            clock=clock,
        )
        return cls(
            validator,
            token_getter=token_getter,
            error_handler=error_handler or UnauthorizedErrorHandler(realm=settings.realm),
            fetcher=owned_fetcher,
        )

    @property
    def key_cache(self) -> SigningKeyCache:
        return self.validator.key_cache

    async def aclose(self) -> None:
        """Release the HTTP client if this configuration created it."""
        if self._owned_fetcher is not None:
            await self._owned_fetcher.aclose()
