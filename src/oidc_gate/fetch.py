"""HTTP fetch capability used for discovery and JWKS documents.

The core never talks to httpx directly: DiscoveryProvider and JWKSProvider
receive a Fetcher at construction. HttpxFetcher is the default.

Design decisions:
- Lifespan-scoped httpx.AsyncClient. Key refreshes are rare but may come in
  bursts during rotation, so the connection pool is kept. A client passed in
  by the caller is reused and never closed here.
- Non-2xx responses are returned, not raised. Document providers apply
  status and body policy through read_json_object.
- Every httpx failure (connect, read, timeout) is raised as FetchError.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from oidc_gate.exceptions import DecodeError, FetchError

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 5.0
_JSON_ACCEPT = "application/json"


@dataclass(frozen=True, slots=True)
class FetchResponse:
    """Raw HTTP response of a document fetch.

    Attributes:
        url: Requested URL.
        status_code: HTTP status code.
        body: Raw response body.
    """

    url: str
    status_code: int
    body: bytes

    @property
    def ok(self) -> bool:
        """True for 2xx responses."""
        return 200 <= self.status_code < 300


def read_json_object(response: FetchResponse) -> dict[str, Any]:
    """Check the status of a document response and decode its JSON object body.

    Args:
        response: Response returned by a Fetcher.

    Returns:
        Decoded JSON object.

    Raises:
        FetchError: If the response is not 2xx.
        DecodeError: If the body is not a JSON object.
    """
    if not response.ok:
        raise FetchError(
            response.url,
            f"unexpected HTTP status {response.status_code}",
            status_code=response.status_code,
        )
    try:
        document = json.loads(response.body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(response.url, f"invalid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise DecodeError(response.url, "expected a JSON object")
    return document


@runtime_checkable
class Fetcher(Protocol):
    """Fetches a URL on behalf of the request that triggered key resolution.

    Implementations must raise FetchError for transport failures and
    timeouts, and return FetchResponse for any HTTP response received.
    """

    async def fetch(self, url: str, request: Request | None = None) -> FetchResponse: ...


class HttpxFetcher:
    """Fetcher backed by httpx.AsyncClient.

    Supports both shared and owned client modes:
    - If ``client`` is provided, it is reused across calls (caller manages lifecycle).
    - If ``client`` is omitted, an internal client is created lazily on first use.
      Call :meth:`aclose` to release the internal client when done.

    Args:
        timeout: Per-request timeout in seconds.
        client: Optional shared httpx.AsyncClient instance.
    """

    def __init__(
        self,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client

    async def fetch(self, url: str, request: Request | None = None) -> FetchResponse:
        """GET ``url`` and return its status and body.

        Args:
            url: Document URL.
            request: Originating request (unused by the default fetcher).

        Returns:
            FetchResponse for any HTTP status.

        Raises:
            FetchError: On timeout or transport failure.
        """
        client = self._get_client()
        try:
            response = await client.get(
                url,
                headers={"Accept": _JSON_ACCEPT},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("oidc_fetch_timeout", extra={"url": url, "timeout": self._timeout})
            raise FetchError(url, "request timed out", timeout=self._timeout) from exc
        except httpx.HTTPError as exc:
            logger.warning("oidc_fetch_failed", extra={"url": url, "error": str(exc)})
            raise FetchError(url, str(exc) or exc.__class__.__name__) from exc

        return FetchResponse(url=url, status_code=response.status_code, body=response.content)

    def _get_client(self) -> httpx.AsyncClient:
        """Return the shared or lazily-created httpx.AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal httpx.AsyncClient if we own it.

        No-op if the client was provided externally or not yet created.
        """
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None
