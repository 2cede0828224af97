"""Key set resolution: issuer -> discovery -> JWKS -> PEM public keys.

Malformed keys are skipped and reported. One bad JWK (unsupported ``kty``,
missing ``kid``, corrupt modulus) never blocks the issuer's other keys; it
lands in ``KeySet.failures`` as a KeyEncodingError naming the kid, and is
logged. A token signed with that kid later fails with that error instead of
a generic "key not found".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from jwt import PyJWK
from jwt.exceptions import InvalidKeyError, PyJWKError

from oidc_gate.exceptions import KeyEncodingError

if TYPE_CHECKING:
    from starlette.requests import Request

    from oidc_gate.discovery import DiscoveryProvider
    from oidc_gate.jwks import JWKSProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedKey:
    """A verification-ready public key published by an issuer.

    Attributes:
        issuer: Issuer that published the key.
        kid: Key ID from the JWKS entry.
        pem: PEM-encoded SubjectPublicKeyInfo.
        algorithm: JWS algorithm declared by the JWK ``alg`` member, if any.
    """

    issuer: str
    kid: str
    pem: bytes
    algorithm: str | None = None


@dataclass(frozen=True, slots=True)
class KeySet:
    """Result of one resolution of an issuer's keys.

    Attributes:
        issuer: Issuer the keys belong to.
        keys: Successfully encoded keys, in JWKS order.
        failures: One KeyEncodingError per entry that could not be encoded.
    """

    issuer: str
    keys: tuple[ResolvedKey, ...] = ()
    failures: tuple[KeyEncodingError, ...] = ()

    def get(self, kid: str) -> ResolvedKey | None:
        for key in self.keys:
            if key.kid == kid:
                return key
        return None

    def failure_for(self, kid: str) -> KeyEncodingError | None:
        for failure in self.failures:
            if failure.kid == kid:
                return failure
        return None

    @property
    def key_ids(self) -> tuple[str, ...]:
        return tuple(key.kid for key in self.keys)


def encode_jwk(issuer: str, entry: Any, index: int = 0) -> ResolvedKey:
    """Convert one JWKS entry into a PEM-encoded public key.

    Supports every asymmetric key type PyJWT understands (RSA, EC, OKP).
    Private key material in the entry is reduced to its public half.

    Args:
        issuer: Issuer that published the entry.
        entry: Raw JWKS entry.
        index: Position of the entry in the JWKS, for error reporting.

    Returns:
        ResolvedKey for the entry.

    Raises:
        KeyEncodingError: If the entry cannot be encoded.
    """
    if not isinstance(entry, dict):
        raise KeyEncodingError(issuer, None, "entry is not a JSON object", index=index)

    kid = entry.get("kid")
    if not isinstance(kid, str) or not kid:
        raise KeyEncodingError(issuer, None, "missing 'kid'", index=index)

    if entry.get("kty") == "oct":
        raise KeyEncodingError(issuer, kid, "symmetric keys are not accepted", index=index)

    try:
        jwk = PyJWK(entry)
        key = jwk.key
        if hasattr(key, "private_bytes"):
            key = key.public_key()
        pem = key.public_bytes(Encoding.PEM, PublicFormat.SubjectPublicKeyInfo)
    except (PyJWKError, InvalidKeyError, ValueError, TypeError, KeyError, AttributeError) as exc:
        raise KeyEncodingError(issuer, kid, str(exc) or exc.__class__.__name__, index=index) from exc

    algorithm = entry.get("alg")
    return ResolvedKey(
        issuer=issuer,
        kid=kid,
        pem=pem,
        algorithm=algorithm if isinstance(algorithm, str) else None,
    )


class KeySetResolver:
    """Resolves the current signing keys of an issuer.

    Args:
        discovery: Discovery document provider.
        jwks: JWKS document provider.
    """

    def __init__(self, discovery: DiscoveryProvider, jwks: JWKSProvider) -> None:
        self._discovery = discovery
        self._jwks = jwks

    async def resolve(self, issuer: str, request: Request | None = None) -> KeySet:
        """Fetch discovery and JWKS documents and encode every key.

        Args:
            issuer: Issuer URL.
            request: Originating request, forwarded to the fetcher.

        Returns:
            KeySet with encoded keys and per-key failures.

        Raises:
            FetchError: If either document cannot be fetched.
            DecodeError: If either document is malformed.
        """
        discovery = await self._discovery.get(issuer, request)
        document = await self._jwks.get(discovery.jwks_uri, request)

        keys: list[ResolvedKey] = []
        failures: list[KeyEncodingError] = []
        seen: set[str] = set()
        for index, entry in enumerate(document.keys):
            try:
                key = encode_jwk(issuer, entry, index)
            except KeyEncodingError as exc:
                failures.append(exc)
                continue
            if key.kid in seen:
                failures.append(KeyEncodingError(issuer, key.kid, "duplicate kid", index=index))
                continue
            seen.add(key.kid)
            keys.append(key)

        for failure in failures:
            logger.warning(
                "jwks_key_skipped",
                extra={
                    "issuer": issuer,
                    "kid": failure.kid,
                    "index": failure.index,
                    "reason": failure.reason,
                },
            )

        logger.info(
            "key_set_resolved",
            extra={
                "issuer": issuer,
                "jwks_uri": discovery.jwks_uri,
                "key_count": len(keys),
                "failure_count": len(failures),
            },
        )
        return KeySet(issuer=issuer, keys=tuple(keys), failures=tuple(failures))
