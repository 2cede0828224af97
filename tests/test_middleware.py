"""Tests for the per-route authentication wrappers and error handling."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.testclient import TestClient

from oidc_gate.configuration import OIDCConfiguration
from oidc_gate.exceptions import MissingTokenError, OIDCError, UnknownIssuerError
from oidc_gate.middleware import (
    GENERIC_FAILURE_MESSAGE,
    PROBLEM_MEDIA_TYPE,
    authenticate,
    authenticate_user,
    authenticate_user_with_params,
    authenticate_with_params,
    bearer_token_from_header,
    problem_response,
)
from oidc_gate.settings import OIDCSettings
from tests.fakes import CLIENT_ID, ISSUER, FakeIdentityProvider

if TYPE_CHECKING:
    from oidc_gate.user import User


def _config(idp: FakeIdentityProvider, **kwargs) -> OIDCConfiguration:
    settings = OIDCSettings(issuer=ISSUER, client_ids=[CLIENT_ID], realm="test-api")
    return OIDCConfiguration.from_settings(settings, fetcher=idp.fetcher, **kwargs)


def _app(config: OIDCConfiguration) -> Starlette:
    async def plain(request: Request) -> Response:
        return JSONResponse({"sub": request.state.id_token.claims.get("sub")})

    async def plain_params(request: Request, org: str) -> Response:
        return JSONResponse({"org": org, "iss": request.state.id_token.issuer})

    async def user_only(user: User | None, request: Request) -> Response:
        return JSONResponse({"sub": user.subject if user else None})

    async def user_params(user: User | None, request: Request, org: str, item: str) -> Response:
        return JSONResponse({"sub": user.subject if user else None, "org": org, "item": item})

    return Starlette(
        routes=[
            Route("/plain", authenticate(config, plain)),
            Route("/orgs/{org}", authenticate_with_params(config, plain_params)),
            Route("/me", authenticate_user(config, user_only)),
            Route("/orgs/{org}/items/{item}", authenticate_user_with_params(config, user_params)),
        ]
    )


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.integration
class TestAuthenticationWrappers:
    def test_authenticate(self, idp: FakeIdentityProvider) -> None:
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/plain", headers=_bearer(idp.sign(sub="alice")))
        assert response.status_code == 200
        assert response.json() == {"sub": "alice"}

    def test_authenticate_with_params(self, idp: FakeIdentityProvider) -> None:
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/orgs/acme", headers=_bearer(idp.sign()))
        assert response.json() == {"org": "acme", "iss": ISSUER}

    def test_authenticate_user(self, idp: FakeIdentityProvider) -> None:
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/me", headers=_bearer(idp.sign(sub="bob")))
        assert response.json() == {"sub": "bob"}

    def test_authenticate_user_with_params(self, idp: FakeIdentityProvider) -> None:
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/orgs/acme/items/7", headers=_bearer(idp.sign()))
        assert response.json() == {"sub": "user-123", "org": "acme", "item": "7"}

    def test_wrappers_keep_endpoint_name(self, idp: FakeIdentityProvider) -> None:
        async def profile(user: User | None, request: Request) -> Response:
            return Response()

        assert authenticate_user(_config(idp), profile).__name__ == "profile"

    def test_keys_fetched_once_across_requests(self, idp: FakeIdentityProvider) -> None:
        config = _config(idp)
        with TestClient(_app(config)) as client:
            for path in ("/plain", "/me", "/orgs/acme"):
                assert client.get(path, headers=_bearer(idp.sign())).status_code == 200
        assert config.key_cache.refresh_count == 1


@pytest.mark.integration
class TestDefaultErrorHandler:
    @pytest.mark.parametrize("path", ["/plain", "/orgs/acme", "/me", "/orgs/acme/items/7"])
    def test_missing_header_halts_with_401(self, idp: FakeIdentityProvider, path: str) -> None:
        with TestClient(_app(_config(idp))) as client:
            response = client.get(path)

        assert response.status_code == 401
        assert response.headers["content-type"] == PROBLEM_MEDIA_TYPE
        assert response.json()["error_code"] == "MISSING_TOKEN"
        assert response.json()["instance"] == path
        assert response.headers["WWW-Authenticate"].startswith('Bearer realm="test-api"')
        assert 'error="invalid_request"' in response.headers["WWW-Authenticate"]

    def test_invalid_token_body(self, idp: FakeIdentityProvider) -> None:
        token = idp.sign(iss="https://evil.example.com")
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/me", headers=_bearer(token))

        body = response.json()
        assert response.status_code == 401
        assert body["type"] == "/errors/unknown-issuer"
        assert body["title"] == "Unauthorized"
        assert body["detail"] == "Token issuer is not permitted"
        assert 'error="invalid_token"' in response.headers["WWW-Authenticate"]
        assert idp.fetcher.calls == []

    def test_key_resolution_failure_is_401(self, idp: FakeIdentityProvider) -> None:
        idp.fetcher.set_body(idp.jwks_uri, b"", status_code=500)
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/me", headers=_bearer(idp.sign()))

        assert response.status_code == 401
        assert response.json()["error_code"] == "FETCH_FAILED"
        assert response.json()["detail"] == GENERIC_FAILURE_MESSAGE
        challenge = response.headers["WWW-Authenticate"]
        assert f'error_description="{GENERIC_FAILURE_MESSAGE}"' in challenge
        assert idp.jwks_uri not in response.text
        assert idp.jwks_uri not in challenge
        assert "500" not in challenge

    def test_unencodable_key_with_non_ascii_alg_is_401(self, idp: FakeIdentityProvider) -> None:
        entry = idp.jwk("k1", alg="RS256☃")
        idp.fetcher.set_json(idp.jwks_uri, {"keys": [entry]})
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/me", headers=_bearer(idp.sign()))

        assert response.status_code == 401
        assert response.json()["error_code"] == "KEY_ENCODING_FAILED"
        assert response.json()["detail"] == GENERIC_FAILURE_MESSAGE
        assert "☃" not in response.text

    def test_expired_token(self, idp: FakeIdentityProvider) -> None:
        with TestClient(_app(_config(idp))) as client:
            response = client.get("/me", headers=_bearer(idp.sign(exp=1)))
        assert response.json()["error_code"] == "TOKEN_EXPIRED"

    def test_invalid_user_is_401(self, idp: FakeIdentityProvider) -> None:
        with TestClient(_app(_config(idp))) as client:
            plain = client.get("/plain", headers=_bearer(idp.sign(sub=None)))
            user = client.get("/me", headers=_bearer(idp.sign(sub=None)))
        assert plain.status_code == 200
        assert user.status_code == 401
        assert user.json()["error_code"] == "INVALID_USER"


@pytest.mark.integration
class TestCustomCollaborators:
    def test_handler_returning_none_continues_without_user(
        self, idp: FakeIdentityProvider
    ) -> None:
        seen: list[OIDCError] = []

        async def lenient(error: OIDCError, request: Request) -> Response | None:
            seen.append(error)
            return None

        with TestClient(_app(_config(idp, error_handler=lenient))) as client:
            response = client.get("/me")

        assert response.status_code == 200
        assert response.json() == {"sub": None}
        assert isinstance(seen[0], MissingTokenError)

    def test_custom_handler_response_is_sent(self, idp: FakeIdentityProvider) -> None:
        async def forbidden(error: OIDCError, request: Request) -> Response | None:
            status = 403 if isinstance(error, UnknownIssuerError) else 401
            return problem_response(request, status, error.error_code, error.message)

        token = idp.sign(iss="https://evil.example.com")
        with TestClient(_app(_config(idp, error_handler=forbidden))) as client:
            response = client.get("/me", headers=_bearer(token))

        assert response.status_code == 403
        assert response.json()["title"] == "Forbidden"
        assert "WWW-Authenticate" not in response.headers

    def test_custom_token_getter(self, idp: FakeIdentityProvider) -> None:
        def from_cookie(request: Request) -> str:
            token = request.cookies.get("id_token")
            if not token:
                raise MissingTokenError("id_token cookie is required")
            return token

        with TestClient(_app(_config(idp, token_getter=from_cookie))) as client:
            client.cookies.set("id_token", idp.sign(sub="carol"))
            response = client.get("/me")

        assert response.json() == {"sub": "carol"}


def _request(authorization: str | None) -> Request:
    headers = [] if authorization is None else [(b"authorization", authorization.encode())]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


@pytest.mark.unit
class TestBearerTokenFromHeader:
    def test_extracts_token(self) -> None:
        assert bearer_token_from_header(_request("Bearer abc.def.ghi")) == "abc.def.ghi"

    def test_scheme_is_case_insensitive(self) -> None:
        assert bearer_token_from_header(_request("bearer abc")) == "abc"

    def test_missing_header(self) -> None:
        with pytest.raises(MissingTokenError, match="required"):
            bearer_token_from_header(_request(None))

    @pytest.mark.parametrize("value", ["Basic dXNlcjpwYXNz", "Token abc", "abc.def.ghi"])
    def test_wrong_scheme(self, value: str) -> None:
        with pytest.raises(OIDCError) as exc_info:
            bearer_token_from_header(_request(value))
        assert exc_info.value.error_code == "INVALID_FORMAT"

    def test_empty_token(self) -> None:
        with pytest.raises(MissingTokenError, match="empty"):
            bearer_token_from_header(_request("Bearer "))

    def test_token_with_spaces(self) -> None:
        with pytest.raises(OIDCError) as exc_info:
            bearer_token_from_header(_request("Bearer abc def"))
        assert exc_info.value.error_code == "INVALID_FORMAT"


@pytest.mark.unit
class TestProblemResponse:
    def test_challenge_header_is_printable_ascii(self) -> None:
        response = problem_response(
            _request(None),
            401,
            "INVALID_TOKEN",
            'Bad "alg" RS256☃\\\n',
            realm="café",
        )

        challenge = response.headers["WWW-Authenticate"]
        assert challenge == (
            'Bearer realm="caf", error="invalid_token", '
            "error_description=\"Bad 'alg' RS256\""
        )
        assert json.loads(response.body)["detail"] == 'Bad "alg" RS256☃\\\n'

    def test_no_challenge_outside_401(self) -> None:
        response = problem_response(_request(None), 503, "SERVICE_UNAVAILABLE", "down")
        assert "WWW-Authenticate" not in response.headers
        assert json.loads(response.body)["title"] == "Service Unavailable"
