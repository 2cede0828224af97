"""ID token validation pipeline.

Validation flow (linear, each step fails fast):
1. Parse the unverified header and payload -> kid, claimed issuer
2. Check the claimed issuer against the request's providers
3. Resolve the signing key (one refresh on a kid miss)
4. Verify the signature
5. Enforce claims: iss, aud, exp, nbf

Step 2 runs before any network access, so tokens from unknown issuers
never cause a discovery fetch.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from oidc_gate.exceptions import (
    AudienceMismatchError,
    ExpiredTokenError,
    IssuerMismatchError,
    KeyNotFoundError,
    TokenParseError,
    UnknownIssuerError,
    UnknownKeyError,
)
from oidc_gate.verify import parse_unverified

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from starlette.requests import Request

    from oidc_gate.cache import SigningKeyCache
    from oidc_gate.keys import ResolvedKey
    from oidc_gate.providers import Provider, ProvidersGetter
    from oidc_gate.verify import TokenVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidatedToken:
    """An ID token that passed every validation step.

    Attributes:
        raw: The token as presented.
        header: Decoded JOSE header.
        claims: Claims exactly as carried by the token.
        provider: Provider whose issuer and client IDs matched.
    """

    raw: str
    header: dict[str, Any]
    claims: dict[str, Any]
    provider: Provider

    @property
    def issuer(self) -> str:
        return str(self.claims["iss"])


class TokenValidator:
    """Validates ID tokens against the providers permitted for a request.

    Args:
        providers_getter: Returns the permitted providers for a request.
        key_cache: Signing key cache.
        verifier: Signature verification capability.
        leeway: Clock skew tolerance in seconds for exp and nbf.
        clock: Returns the current time as a POSIX timestamp.
    """

    def __init__(
        self,
        providers_getter: ProvidersGetter,
        key_cache: SigningKeyCache,
        verifier: TokenVerifier,
        leeway: float = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._providers_getter = providers_getter
        self._key_cache = key_cache
        self._verifier = verifier
        self._leeway = leeway
        self._clock = clock

    @property
    def key_cache(self) -> SigningKeyCache:
        return self._key_cache

    async def validate(self, request: Request | None, raw_token: str) -> ValidatedToken:
        """Run the full validation pipeline on ``raw_token``.

        Args:
            request: Request the token was presented with.
            raw_token: Compact-serialized ID token.

        Returns:
            ValidatedToken carrying the unmodified claims.

        Raises:
            TokenParseError: Malformed token, or missing kid/iss.
            UnknownIssuerError: Claimed issuer is not permitted.
            UnknownKeyError: Kid unknown to the issuer even after refresh.
            KeyEncodingError: The issuer publishes the kid in unusable form.
            FetchError: Key refresh could not fetch a document.
            DecodeError: Key refresh received a malformed document.
            SignatureError: Signature or algorithm not acceptable.
            IssuerMismatchError: Verified issuer does not match exactly one provider.
            AudienceMismatchError: No expected client ID in ``aud``.
            ExpiredTokenError: Token expired, not yet valid, or has no ``exp``.
        """
        # 1. Structural parse, nothing trusted yet
        header, unverified = parse_unverified(raw_token)
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise TokenParseError("Token header has no 'kid'")
        claimed_issuer = unverified.get("iss")
        if not isinstance(claimed_issuer, str) or not claimed_issuer:
            raise TokenParseError("Token has no 'iss' claim")

        # 2. Permitted issuers for this request
        providers = self._providers_getter(request)
        if not any(p.issuer == claimed_issuer for p in providers):
            raise UnknownIssuerError(claimed_issuer)

        # 3. Signing key
        try:
            key = await self._key_cache.get_key(claimed_issuer, kid, request)
        except KeyNotFoundError as exc:
            raise UnknownKeyError(claimed_issuer, kid) from exc

        # 4. Signature
        claims = self._verifier.verify(raw_token, _key_lookup(key))

        # 5. Claims
        provider = self._match_issuer(providers, claims)
        _check_audience(provider, claims)
        self._check_lifetime(claims)

        logger.debug(
            "id_token_validated",
            extra={"issuer": provider.issuer, "kid": kid, "subject": claims.get("sub")},
        )
        return ValidatedToken(raw=raw_token, header=header, claims=claims, provider=provider)

    def _match_issuer(self, providers: Sequence[Provider], claims: dict[str, Any]) -> Provider:
        issuer = claims.get("iss")
        matches = [p for p in providers if p.issuer == issuer]
        if len(matches) != 1:
            raise IssuerMismatchError(
                "Token issuer does not match exactly one provider",
                {"issuer": issuer, "matches": len(matches)},
            )
        return matches[0]

    def _check_lifetime(self, claims: dict[str, Any]) -> None:
        now = self._clock()

        exp = claims.get("exp")
        if not _is_numeric_date(exp):
            raise ExpiredTokenError("Token has no valid 'exp' claim")
        if now >= exp + self._leeway:
            raise ExpiredTokenError("Token has expired", {"exp": exp})

        nbf = claims.get("nbf")
        if nbf is None:
            return
        if not _is_numeric_date(nbf):
            raise ExpiredTokenError("Token has an invalid 'nbf' claim")
        if now + self._leeway < nbf:
            raise ExpiredTokenError("Token is not yet valid", {"nbf": nbf})


def _key_lookup(key: ResolvedKey) -> Callable[[dict[str, Any]], ResolvedKey]:
    def lookup(header: dict[str, Any]) -> ResolvedKey:
        if header.get("kid") != key.kid:
            raise UnknownKeyError(key.issuer, str(header.get("kid")))
        return key

    return lookup


def _check_audience(provider: Provider, claims: dict[str, Any]) -> None:
    aud = claims.get("aud")
    if isinstance(aud, str):
        audiences = [aud]
    elif isinstance(aud, list) and all(isinstance(a, str) for a in aud):
        audiences = aud
    else:
        raise AudienceMismatchError("Token has no valid 'aud' claim")

    if not set(audiences) & set(provider.client_ids):
        raise AudienceMismatchError(
            "Token audience does not include an expected client ID",
            {"aud": audiences},
        )


def _is_numeric_date(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)
