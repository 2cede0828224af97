"""Per-issuer signing key cache with single-flight refresh.

Hits are plain dict lookups: no lock, no await, no network. This is the
path every authenticated request takes.

A miss (unknown kid, usually because the issuer rotated its keys) triggers
a refresh of the whole issuer through KeySetResolver. At most one refresh
per issuer is in flight: concurrent missers await the same task, and its
failure is raised in every one of them. Refreshes for different issuers run
independently.

A successful refresh replaces the issuer's key mapping wholesale, so a kid
removed from the JWKS stops being served as soon as any miss triggers a
refresh. A failed refresh leaves the previous mapping in place.

With ``min_refresh_interval`` set, a miss arriving within that many seconds
of the issuer's last successful refresh is answered from that refresh
instead of fetching again. This bounds the outbound traffic that tokens
with made-up kids can cause, at the cost of delaying pickup of a key
published inside the window.

The cache is bound to one event loop; it is not thread-safe.
"""

from __future__ import annotations

import asyncio
import logging
import time
from functools import partial
from typing import TYPE_CHECKING

from oidc_gate.exceptions import KeyEncodingError, KeyNotFoundError, OIDCError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from starlette.requests import Request

    from oidc_gate.keys import KeySet, KeySetResolver, ResolvedKey

logger = logging.getLogger(__name__)


class SigningKeyCache:
    """Caches resolved keys by (issuer, kid).

    Args:
        resolver: Resolver used to (re)load an issuer's keys.
        min_refresh_interval: Seconds after a successful refresh during
            which misses for the same issuer do not refresh again. 0
            refreshes on every miss.
        clock: Monotonic time source for the refresh interval.

    Example:
        >>> cache = SigningKeyCache(resolver)
        >>> key = await cache.get_key("https://idp.example.com", "k1")
        >>> key.pem.startswith(b"-----BEGIN PUBLIC KEY-----")
        True
    """

    def __init__(
        self,
        resolver: KeySetResolver,
        min_refresh_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_refresh_interval < 0:
            raise ValueError("min_refresh_interval must not be negative")
        self._resolver = resolver
        self._min_refresh_interval = min_refresh_interval
        self._clock = clock
        self._keys: dict[str, dict[str, ResolvedKey]] = {}
        self._last_refresh: dict[str, tuple[float, KeySet]] = {}
        self._inflight: dict[str, asyncio.Task[KeySet]] = {}
        self.refresh_count = 0

    async def get_key(self, issuer: str, kid: str, request: Request | None = None) -> ResolvedKey:
        """Return the key ``kid`` of ``issuer``, refreshing once on a miss.

        Args:
            issuer: Issuer URL (the token's ``iss`` claim).
            kid: Key ID from the token header.
            request: Originating request, forwarded to the fetcher on a miss.

        Returns:
            The matching ResolvedKey.

        Raises:
            KeyNotFoundError: If the kid is absent even after refresh.
            KeyEncodingError: If the issuer publishes the kid but it cannot
                be encoded.
            FetchError: If the refresh could not fetch a document.
            DecodeError: If the refresh received a malformed document.
        """
        key = self._keys.get(issuer, {}).get(kid)
        if key is not None:
            return key

        key_set = self._recent_key_set(issuer)
        if key_set is None:
            logger.info("signing_key_cache_miss", extra={"issuer": issuer, "kid": kid})
            key_set = await self.refresh(issuer, request)
        else:
            logger.debug(
                "signing_key_cache_refresh_throttled", extra={"issuer": issuer, "kid": kid}
            )

        key = key_set.get(kid)
        if key is not None:
            return key

        failure = key_set.failure_for(kid)
        if failure is not None:
            raise KeyEncodingError(failure.issuer, failure.kid, failure.reason, index=failure.index)
        raise KeyNotFoundError(issuer, kid)

    async def refresh(self, issuer: str, request: Request | None = None) -> KeySet:
        """Reload the keys of ``issuer``, joining a refresh already in flight.

        Args:
            issuer: Issuer URL.
            request: Originating request; only the caller that starts the
                refresh has its request forwarded.

        Returns:
            The KeySet produced by the refresh.

        Raises:
            FetchError: If a document could not be fetched.
            DecodeError: If a document was malformed.
        """
        task = self._inflight.get(issuer)
        if task is None:
            task = asyncio.ensure_future(self._refresh(issuer, request))
            self._inflight[issuer] = task
            task.add_done_callback(partial(self._forget, issuer))
        # Shielded: cancelling one waiter must not cancel the shared refresh.
        return await asyncio.shield(task)

    async def prewarm(self, issuers: Iterable[str]) -> None:
        """Resolve the keys of every issuer up front.

        Failures are logged and swallowed: a cold cache only costs one
        refresh on the first request.

        Args:
            issuers: Issuer URLs to load.
        """
        issuers = list(dict.fromkeys(issuers))
        results = await asyncio.gather(
            *(self.refresh(issuer) for issuer in issuers),
            return_exceptions=True,
        )
        for issuer, result in zip(issuers, results, strict=True):
            if isinstance(result, OIDCError):
                logger.warning(
                    "signing_key_cache_prewarm_failed",
                    extra={"issuer": issuer, "error": str(result)},
                )
            elif isinstance(result, BaseException):
                raise result

    def cached_key_ids(self, issuer: str) -> tuple[str, ...]:
        """Key IDs currently cached for ``issuer``."""
        return tuple(self._keys.get(issuer, {}))

    def invalidate(self, issuer: str | None = None) -> None:
        """Drop cached keys for one issuer, or for all issuers."""
        if issuer is None:
            self._keys.clear()
            self._last_refresh.clear()
        else:
            self._keys.pop(issuer, None)
            self._last_refresh.pop(issuer, None)

    def _recent_key_set(self, issuer: str) -> KeySet | None:
        if self._min_refresh_interval <= 0:
            return None
        last = self._last_refresh.get(issuer)
        if last is None:
            return None
        refreshed_at, key_set = last
        if self._clock() - refreshed_at >= self._min_refresh_interval:
            return None
        return key_set

    async def _refresh(self, issuer: str, request: Request | None) -> KeySet:
        self.refresh_count += 1
        key_set = await self._resolver.resolve(issuer, request)
        self._keys[issuer] = {key.kid: key for key in key_set.keys}
        self._last_refresh[issuer] = (self._clock(), key_set)
        logger.info(
            "signing_key_cache_refreshed",
            extra={"issuer": issuer, "key_ids": list(key_set.key_ids)},
        )
        return key_set

    def _forget(self, issuer: str, task: asyncio.Task[KeySet]) -> None:
        if self._inflight.get(issuer) is task:
            del self._inflight[issuer]
