"""Shared fixtures: signing keys and a fake identity provider."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from oidc_gate.settings import get_oidc_settings
from tests.fakes import FakeFetcher, FakeIdentityProvider

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(scope="session")
def signing_keys() -> dict[str, Any]:
    """RSA and EC private keys, generated once per session."""
    return {
        "k1": rsa.generate_private_key(public_exponent=65537, key_size=2048),
        "k2": rsa.generate_private_key(public_exponent=65537, key_size=2048),
        "rogue": rsa.generate_private_key(public_exponent=65537, key_size=2048),
        "ec1": ec.generate_private_key(ec.SECP256R1()),
    }


@pytest.fixture()
def idp(signing_keys: dict[str, Any]) -> FakeIdentityProvider:
    """Identity provider at ISSUER publishing key ``k1``."""
    return FakeIdentityProvider(signing_keys)


@pytest.fixture()
def fetcher(idp: FakeIdentityProvider) -> FakeFetcher:
    return idp.fetcher


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_oidc_settings.cache_clear()
    yield
    get_oidc_settings.cache_clear()
