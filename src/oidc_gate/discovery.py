"""OIDC discovery document retrieval.

Fetches ``{issuer}/.well-known/openid-configuration`` and extracts the
``jwks_uri``. The discovered issuer must match the requested one, otherwise
the document is rejected: a provider advertising keys for another issuer
cannot be trusted to sign this issuer's tokens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from oidc_gate.exceptions import DecodeError
from oidc_gate.fetch import read_json_object
from oidc_gate.settings import DEFAULT_DISCOVERY_PATH

if TYPE_CHECKING:
    from starlette.requests import Request

    from oidc_gate.fetch import Fetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DiscoveryDocument:
    """The parts of an OIDC discovery document needed for key resolution.

    Attributes:
        issuer: Issuer advertised by the document.
        jwks_uri: Location of the issuer's JSON Web Key Set.
    """

    issuer: str
    jwks_uri: str


class DiscoveryProvider:
    """Fetches and decodes OIDC discovery documents.

    No caching happens here; SigningKeyCache only resolves on a key miss.

    Args:
        fetcher: HTTP fetch capability.
        discovery_path: Well-known path appended to the issuer URL.
    """

    def __init__(self, fetcher: Fetcher, discovery_path: str = DEFAULT_DISCOVERY_PATH) -> None:
        self._fetcher = fetcher
        self._discovery_path = discovery_path

    def discovery_url(self, issuer: str) -> str:
        """Build the discovery document URL for an issuer."""
        return f"{issuer.rstrip('/')}{self._discovery_path}"

    async def get(self, issuer: str, request: Request | None = None) -> DiscoveryDocument:
        """Fetch the discovery document for ``issuer``.

        Args:
            issuer: Issuer URL.
            request: Originating request, forwarded to the fetcher.

        Returns:
            Decoded DiscoveryDocument.

        Raises:
            FetchError: On transport failure or non-2xx response.
            DecodeError: If the body is malformed, lacks ``issuer`` or
                ``jwks_uri``, or advertises a different issuer.
        """
        url = self.discovery_url(issuer)
        response = await self._fetcher.fetch(url, request)
        doc = read_json_object(response)

        discovered_issuer = doc.get("issuer")
        if not isinstance(discovered_issuer, str) or not discovered_issuer:
            raise DecodeError(url, "missing 'issuer'")
        if discovered_issuer.rstrip("/") != issuer.rstrip("/"):
            logger.warning(
                "oidc_discovery_issuer_mismatch",
                extra={"expected": issuer, "discovered": discovered_issuer},
            )
            raise DecodeError(url, "issuer mismatch", discovered_issuer=discovered_issuer)

        jwks_uri = doc.get("jwks_uri")
        if not isinstance(jwks_uri, str) or not jwks_uri:
            raise DecodeError(url, "missing 'jwks_uri'")

        logger.info("oidc_discovery_success", extra={"issuer": issuer, "jwks_uri": jwks_uri})
        return DiscoveryDocument(issuer=discovered_issuer, jwks_uri=jwks_uri)
