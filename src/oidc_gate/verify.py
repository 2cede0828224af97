"""JWT parsing and signature verification capability.

TokenVerifier is the seam between the validation pipeline and the JWT
library. The default implementation delegates to PyJWT and only checks the
signature; claim policy (iss, aud, exp, nbf) is enforced by TokenValidator
so every claim failure maps to its own error kind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import jwt as pyjwt

from oidc_gate.exceptions import SignatureError, TokenParseError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from oidc_gate.keys import ResolvedKey

# Claim checks are done by TokenValidator.
_SIGNATURE_ONLY: dict[str, Any] = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}


def parse_unverified(raw_token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a compact JWS into its header and payload without verifying it.

    Args:
        raw_token: Compact-serialized JWT.

    Returns:
        Tuple of (header, claims). Nothing in either is trusted yet.

    Raises:
        TokenParseError: If the token is empty or structurally malformed.
    """
    if not raw_token:
        raise TokenParseError("Token is empty")
    try:
        decoded = pyjwt.decode_complete(raw_token, options={"verify_signature": False})
    except pyjwt.InvalidTokenError as exc:
        raise TokenParseError("Token is malformed", {"reason": str(exc)}) from exc
    return decoded["header"], decoded["payload"]


@runtime_checkable
class TokenVerifier(Protocol):
    """Verifies a token's signature with a key chosen from its header."""

    def verify(
        self,
        raw_token: str,
        key_lookup: Callable[[dict[str, Any]], ResolvedKey],
    ) -> dict[str, Any]: ...


class PyJWTVerifier:
    """TokenVerifier backed by ``jwt.decode``.

    The accepted algorithms are narrowed to the JWK's own ``alg`` when the
    JWKS declares one, so a key published for RS256 cannot verify an RS512
    (or HS256) token.

    Args:
        algorithms: JWS algorithms accepted for ID tokens.

    Raises:
        ValueError: If no algorithm is given or ``none`` is among them.
    """

    def __init__(self, algorithms: Iterable[str] = ("RS256",)) -> None:
        self._algorithms = tuple(algorithms)
        if not self._algorithms:
            raise ValueError("At least one algorithm is required")
        if any(alg.lower() == "none" for alg in self._algorithms):
            raise ValueError("The 'none' algorithm is never accepted")

    @property
    def algorithms(self) -> tuple[str, ...]:
        return self._algorithms

    def verify(
        self,
        raw_token: str,
        key_lookup: Callable[[dict[str, Any]], ResolvedKey],
    ) -> dict[str, Any]:
        """Verify the signature of ``raw_token`` and return its claims.

        Args:
            raw_token: Compact-serialized JWT.
            key_lookup: Returns the key to verify with, given the token header.

        Returns:
            Claims exactly as carried by the token.

        Raises:
            TokenParseError: If the token is malformed.
            SignatureError: If the signature or algorithm is not acceptable.
        """
        try:
            header = pyjwt.get_unverified_header(raw_token)
        except pyjwt.InvalidTokenError as exc:
            raise TokenParseError("Token is malformed", {"reason": str(exc)}) from exc

        key = key_lookup(header)
        algorithms = self._algorithms_for(key)
        try:
            claims: dict[str, Any] = pyjwt.decode(
                raw_token,
                key.pem,
                algorithms=list(algorithms),
                options=_SIGNATURE_ONLY,
            )
        except pyjwt.InvalidSignatureError as exc:
            raise SignatureError(
                "Token signature verification failed", {"kid": key.kid}
            ) from exc
        except (pyjwt.InvalidAlgorithmError, pyjwt.InvalidKeyError) as exc:
            raise SignatureError(
                "Token algorithm is not accepted",
                {"kid": key.kid, "alg": header.get("alg"), "reason": str(exc)},
            ) from exc
        except pyjwt.InvalidTokenError as exc:
            raise TokenParseError("Token is malformed", {"reason": str(exc)}) from exc
        return claims

    def _algorithms_for(self, key: ResolvedKey) -> tuple[str, ...]:
        if key.algorithm is None:
            return self._algorithms
        if key.algorithm not in self._algorithms:
            raise SignatureError(
                "Signing key algorithm is not accepted",
                {"kid": key.kid, "alg": key.algorithm},
            )
        return (key.algorithm,)
