"""Tests for JWK encoding and KeySetResolver skip-and-report policy."""

from __future__ import annotations

import json
from typing import Any

import pytest
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_pem_public_key,
)
from jwt.algorithms import RSAAlgorithm

from oidc_gate.discovery import DiscoveryProvider
from oidc_gate.exceptions import DecodeError, FetchError, KeyEncodingError
from oidc_gate.jwks import JWKSProvider
from oidc_gate.keys import KeySet, KeySetResolver, ResolvedKey, encode_jwk
from tests.fakes import DISCOVERY_URL, ISSUER, JWKS_URI, FakeIdentityProvider


def _pem(private_key: Any) -> bytes:
    return private_key.public_key().public_bytes(Encoding.PEM, PublicFormat.SubjectPublicKeyInfo)


def _resolver(idp: FakeIdentityProvider) -> KeySetResolver:
    return KeySetResolver(DiscoveryProvider(idp.fetcher), JWKSProvider(idp.fetcher))


@pytest.mark.unit
class TestEncodeJwk:
    def test_rsa_key_encoded_to_pem(self, idp: FakeIdentityProvider) -> None:
        key = encode_jwk(ISSUER, idp.jwk("k1"))
        assert key.kid == "k1"
        assert key.issuer == ISSUER
        assert key.algorithm == "RS256"
        assert key.pem.startswith(b"-----BEGIN PUBLIC KEY-----")
        assert key.pem == _pem(idp.keys["k1"])
        load_pem_public_key(key.pem)

    def test_ec_key_encoded_to_pem(self, idp: FakeIdentityProvider) -> None:
        key = encode_jwk(ISSUER, idp.jwk("ec1", alg="ES256"))
        assert key.algorithm == "ES256"
        assert key.pem == _pem(idp.keys["ec1"])

    def test_algorithm_absent_when_jwk_has_no_alg(self, idp: FakeIdentityProvider) -> None:
        key = encode_jwk(ISSUER, idp.jwk("k1", alg=None))
        assert key.algorithm is None

    def test_private_jwk_reduced_to_public_key(self, idp: FakeIdentityProvider) -> None:
        entry = json.loads(RSAAlgorithm.to_jwk(idp.keys["k2"]))
        entry["kid"] = "k2"
        assert "d" in entry
        assert encode_jwk(ISSUER, entry).pem == _pem(idp.keys["k2"])

    def test_non_object_entry(self) -> None:
        with pytest.raises(KeyEncodingError, match="not a JSON object") as exc_info:
            encode_jwk(ISSUER, "garbage", index=4)
        assert exc_info.value.kid is None
        assert exc_info.value.index == 4

    def test_missing_kid(self, idp: FakeIdentityProvider) -> None:
        entry = idp.jwk("k1")
        del entry["kid"]
        with pytest.raises(KeyEncodingError, match="missing 'kid'"):
            encode_jwk(ISSUER, entry)

    def test_unsupported_kty_names_kid(self) -> None:
        with pytest.raises(KeyEncodingError) as exc_info:
            encode_jwk(ISSUER, {"kid": "x1", "kty": "XYZ"})
        assert exc_info.value.kid == "x1"

    def test_symmetric_key_rejected(self) -> None:
        with pytest.raises(KeyEncodingError, match="symmetric"):
            encode_jwk(ISSUER, {"kid": "s1", "kty": "oct", "k": "c2VjcmV0"})

    def test_rsa_key_without_modulus(self) -> None:
        with pytest.raises(KeyEncodingError) as exc_info:
            encode_jwk(ISSUER, {"kid": "bad", "kty": "RSA", "e": "AQAB"})
        assert exc_info.value.kid == "bad"


@pytest.mark.unit
class TestKeySet:
    def test_lookup_helpers(self) -> None:
        key = ResolvedKey(ISSUER, "k1", b"pem")
        failure = KeyEncodingError(ISSUER, "k9", "broken")
        key_set = KeySet(ISSUER, keys=(key,), failures=(failure,))
        assert key_set.get("k1") is key
        assert key_set.get("k9") is None
        assert key_set.failure_for("k9") is failure
        assert key_set.failure_for("k1") is None
        assert key_set.key_ids == ("k1",)


@pytest.mark.unit
class TestKeySetResolver:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_resolves_all_keys_in_order(self, idp: FakeIdentityProvider) -> None:
        idp.publish("k2", "k1", "ec1")
        key_set = await _resolver(idp).resolve(ISSUER)
        assert key_set.key_ids == ("k2", "k1", "ec1")
        assert key_set.failures == ()
        assert idp.fetcher.calls == [DISCOVERY_URL, JWKS_URI]

    @pytest.mark.asyncio(loop_scope="function")
    async def test_malformed_key_skipped_and_reported(self, idp: FakeIdentityProvider) -> None:
        idp.publish("k1", "k2", extra=[{"kid": "x1", "kty": "XYZ"}, {"kty": "RSA"}])
        key_set = await _resolver(idp).resolve(ISSUER)

        assert key_set.key_ids == ("k1", "k2")
        assert [f.kid for f in key_set.failures] == ["x1", None]
        assert [f.index for f in key_set.failures] == [2, 3]

    @pytest.mark.asyncio(loop_scope="function")
    async def test_duplicate_kid_first_wins(self, idp: FakeIdentityProvider) -> None:
        duplicate = idp.jwk("k2")
        duplicate["kid"] = "k1"
        idp.publish("k1", extra=[duplicate])
        key_set = await _resolver(idp).resolve(ISSUER)

        assert key_set.key_ids == ("k1",)
        assert key_set.get("k1").pem == _pem(idp.keys["k1"])  # type: ignore[union-attr]
        assert key_set.failure_for("k1").reason == "duplicate kid"  # type: ignore[union-attr]

    @pytest.mark.asyncio(loop_scope="function")
    async def test_all_keys_malformed_yields_empty_set(self, idp: FakeIdentityProvider) -> None:
        idp.fetcher.set_json(JWKS_URI, {"keys": [{"kid": "x1", "kty": "XYZ"}]})
        key_set = await _resolver(idp).resolve(ISSUER)
        assert key_set.keys == ()
        assert len(key_set.failures) == 1

    @pytest.mark.asyncio(loop_scope="function")
    async def test_discovery_failure_stops_before_jwks(self, idp: FakeIdentityProvider) -> None:
        idp.fetcher.set_json(DISCOVERY_URL, {"issuer": ISSUER})
        with pytest.raises(DecodeError):
            await _resolver(idp).resolve(ISSUER)
        assert JWKS_URI not in idp.fetcher.calls

    @pytest.mark.asyncio(loop_scope="function")
    async def test_jwks_failure_propagates(self, idp: FakeIdentityProvider) -> None:
        idp.fetcher.set_body(JWKS_URI, b"", status_code=502)
        with pytest.raises(FetchError):
            await _resolver(idp).resolve(ISSUER)
