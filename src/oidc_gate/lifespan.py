"""Lifespan hook for signing key pre-warming and HTTP client cleanup.

Usage:
    app = Starlette(routes=routes, lifespan=oidc_lifespan)
    app.add_middleware(OIDCAuthMiddleware)

Compose with other lifespans by entering ``oidc_lifespan(app)`` from your own.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from oidc_gate.configuration import OIDCConfiguration
from oidc_gate.settings import get_oidc_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def oidc_lifespan(app: Any) -> AsyncIterator[None]:
    """Manage OIDC resources across the application lifecycle.

    Startup:
        1. Build OIDCConfiguration from settings, store it in app.state.oidc.
        2. Pre-warm the signing key cache if an issuer is configured.

    Shutdown:
        1. Close the HTTP client owned by the configuration.

    Args:
        app: The application instance.
    """
    settings = get_oidc_settings()
    config = OIDCConfiguration.from_settings(settings)
    app.state.oidc = config

    if settings.prewarm and settings.is_configured():
        # Pre-warm failures are logged by the cache; startup continues.
        await config.key_cache.prewarm([settings.issuer])
        logger.info(
            "oidc_lifespan: signing keys pre-warmed",
            extra={"key_ids": list(config.key_cache.cached_key_ids(settings.issuer))},
        )
    else:
        logger.info("oidc_lifespan: skipping signing key pre-warming")

    try:
        yield
    finally:
        await config.aclose()
        logger.info("oidc_lifespan: shutdown complete")
