"""JSON Web Key Set document retrieval.

Entries are passed through exactly as published, in order. Nothing is
filtered here: an entry with an unsupported key type must surface later as
a KeyEncodingError naming its kid, not vanish.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from oidc_gate.exceptions import DecodeError
from oidc_gate.fetch import read_json_object

if TYPE_CHECKING:
    from starlette.requests import Request

    from oidc_gate.fetch import Fetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JWKSDocument:
    """An ordered JSON Web Key Set.

    Attributes:
        uri: URI the set was fetched from.
        keys: JWK entries in document order. Usually dicts, but anything
            found in the ``keys`` array is kept.
    """

    uri: str
    keys: tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.keys)


class JWKSProvider:
    """Fetches and decodes JWKS documents.

    Args:
        fetcher: HTTP fetch capability.
    """

    def __init__(self, fetcher: Fetcher) -> None:
        self._fetcher = fetcher

    async def get(self, jwks_uri: str, request: Request | None = None) -> JWKSDocument:
        """Fetch the key set published at ``jwks_uri``.

        Args:
            jwks_uri: JWKS endpoint from the discovery document.
            request: Originating request, forwarded to the fetcher.

        Returns:
            JWKSDocument with entries in document order.

        Raises:
            FetchError: On transport failure or non-2xx response.
            DecodeError: If the body is not an object with a ``keys`` array.
        """
        response = await self._fetcher.fetch(jwks_uri, request)
        doc = read_json_object(response)

        keys = doc.get("keys")
        if not isinstance(keys, list):
            raise DecodeError(jwks_uri, "missing 'keys' array")

        logger.debug("jwks_fetched", extra={"jwks_uri": jwks_uri, "key_count": len(keys)})
        return JWKSDocument(uri=jwks_uri, keys=tuple(keys))
