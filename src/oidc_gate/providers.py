"""Permitted identity providers and the per-request providers getter.

A Provider pairs an issuer with the client IDs whose tokens the service
accepts from it. Which providers apply to a request is decided by a
ProvidersGetter; the default returns a fixed list built at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from starlette.requests import Request


@dataclass(frozen=True, slots=True)
class Provider:
    """An issuer trusted by the service and the audiences accepted from it.

    Attributes:
        issuer: Issuer URL, compared exactly against the ``iss`` claim.
        client_ids: Client IDs accepted in the ``aud`` claim.

    Raises:
        ValueError: If issuer is empty or no client ID is given.
        TypeError: If client_ids is a single string instead of a sequence.
    """

    issuer: str
    client_ids: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.issuer:
            raise ValueError("Provider issuer is required")
        if isinstance(self.client_ids, str):
            raise TypeError(
                f"Provider {self.issuer} client_ids must be a sequence of strings, "
                "not a single string"
            )
        client_ids = tuple(self.client_ids)
        if not client_ids or not all(client_ids):
            raise ValueError(f"Provider {self.issuer} requires at least one non-empty client ID")
        object.__setattr__(self, "client_ids", client_ids)


@runtime_checkable
class ProvidersGetter(Protocol):
    """Returns the providers whose tokens are acceptable for a request."""

    def __call__(self, request: Request | None) -> Sequence[Provider]: ...


class StaticProvidersGetter:
    """ProvidersGetter returning the same providers for every request.

    Args:
        providers: Permitted providers.

    Example:
        >>> getter = StaticProvidersGetter([Provider("https://idp.example.com", ("web",))])
        >>> [p.issuer for p in getter(None)]
        ['https://idp.example.com']
    """

    def __init__(self, providers: Iterable[Provider]) -> None:
        self._providers = tuple(providers)

    def __call__(self, request: Request | None) -> Sequence[Provider]:
        return self._providers

    @property
    def issuers(self) -> tuple[str, ...]:
        """Issuers of all configured providers, in order, without duplicates."""
        return tuple(dict.fromkeys(p.issuer for p in self._providers))
