"""User identity projected from a validated ID token.

Immutable (frozen dataclass). Only ever built from a ValidatedToken, so
holding a User means the token behind it passed validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from oidc_gate.exceptions import InvalidUserError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from oidc_gate.validator import ValidatedToken


@dataclass(frozen=True, slots=True)
class User:
    """Authenticated end user.

    Attributes:
        issuer: ``iss`` claim -- the identity provider that authenticated the user.
        subject: ``sub`` claim -- identifier of the user, unique within the issuer.
        claims: All token claims, read-only.
    """

    issuer: str
    subject: str
    claims: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_token(cls, token: ValidatedToken) -> User:
        """Project a validated token onto a User.

        Args:
            token: Token that passed TokenValidator.validate.

        Returns:
            User with issuer, subject and a read-only view of the claims.

        Raises:
            InvalidUserError: If ``iss`` or ``sub`` is missing or not a string.
        """
        issuer = token.claims.get("iss")
        if not isinstance(issuer, str) or not issuer:
            raise InvalidUserError("Token 'iss' claim is not a valid issuer")
        subject = token.claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidUserError("Token 'sub' claim is not a valid subject", {"issuer": issuer})
        return cls(issuer=issuer, subject=subject, claims=MappingProxyType(dict(token.claims)))

    @property
    def email(self) -> str | None:
        email = self.claims.get("email")
        return email if isinstance(email, str) else None
