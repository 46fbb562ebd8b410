"""
tests/test_auth_routes.py -- Integration tests for the auth REST endpoints.

These tests exercise the full stack: FastAPI routing -> request validation ->
AuthFlows -> SqlUserStore -> response envelope serialization.

Coverage:
  - POST /register: 200 envelope with token, 409 duplicate username/email, 422 field errors
  - POST /login: 200 envelope, 401 identical for unknown user and wrong password
  - POST /token: OAuth2 shape, 400 unsupported_grant_type, 401 invalid_grant
  - updated_at is bumped by /login but not by /token
  - GET /me: bearer validation
  - 500 envelope when the store fails
  - 429 envelope with Retry-After once /login or /token passes its limit

Fixtures used (from conftest.py):
  - api_client: (client, store) -- one shared store per module; each test
    registers its own usernames.
"""

from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.limiter import limiter
from auth.store import SqlUserStore
from core.config import get_settings

# "10/minute" -> 10
_LOGIN_LIMIT = int(get_settings().login_rate_limit.split("/")[0])


def _register(client: TestClient, username: str, password: str = "secret1", email: str | None = None):
    body = {"username": username, "password": password, "confirmPassword": password}
    if email is not None:
        body["email"] = email
    return client.post("/api/auth/register", json=body)


class TestRegister:
    def test_register_returns_token_envelope(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        """POST /register with valid body must return 200 with a token whose subject is the username."""
        client, store = api_client
        resp = _register(client, "reg_alice", email="reg_alice@example.com")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["statusCode"] == 200
        assert body["success"] is True
        assert body["data"]["success"] is True
        token = body["data"]["token"]
        claims = jwt.get_unverified_claims(token)
        assert claims["sub"] == "reg_alice"
        assert claims["iss"] == "LoginApi"
        assert claims["aud"] == "LoginApiUsers"
        assert "errors" not in body
        assert resp.headers["Cache-Control"] == "no-store"

        user = store.find_by_username("reg_alice")
        assert user is not None
        assert user.email == "reg_alice@example.com"
        assert user.password_hash != "secret1"

    def test_expires_at_matches_token_exp(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        data = _register(client, "reg_expiry").json()["data"]
        exp = jwt.get_unverified_claims(data["token"])["exp"]
        assert int(datetime.fromisoformat(data["expiresAt"].replace("Z", "+00:00")).timestamp()) == exp

    def test_duplicate_username_409(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        assert _register(client, "reg_dup").status_code == 200
        resp = _register(client, "reg_dup", password="other12")
        assert resp.status_code == 409
        body = resp.json()
        assert body == {"statusCode": 409, "success": False, "message": "Username already exists"}

    def test_duplicate_email_409(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, store = api_client
        assert _register(client, "reg_mail_a", email="same@example.com").status_code == 200
        resp = _register(client, "reg_mail_b", email="same@example.com")
        assert resp.status_code == 409
        assert resp.json()["message"] == "Email is already in use"
        assert store.find_by_username("reg_mail_b") is None

    def test_validation_errors_are_per_field(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        """Bad username, short password and bad email are all reported in one 422."""
        client, _store = api_client
        resp = client.post(
            "/api/auth/register",
            json={"username": "a!", "password": "123", "confirmPassword": "123", "email": "not-an-email"},
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["statusCode"] == 422
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert set(body["errors"]) >= {"username", "password", "email"}

    def test_confirm_password_mismatch_422(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, store = api_client
        resp = client.post(
            "/api/auth/register",
            json={"username": "reg_mismatch", "password": "secret1", "confirmPassword": "secret2"},
        )
        assert resp.status_code == 422
        assert "confirmPassword" in resp.json()["errors"]
        assert store.find_by_username("reg_mismatch") is None


class TestLogin:
    def test_login_success(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, store = api_client
        _register(client, "login_ok")
        assert store.find_by_username("login_ok").updated_at is None

        resp = client.post("/api/auth/login", json={"username": "login_ok", "password": "secret1"})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["message"] == "Login successful"
        assert jwt.get_unverified_claims(body["data"]["token"])["sub"] == "login_ok"
        assert resp.headers["Cache-Control"] == "no-store"
        assert store.find_by_username("login_ok").updated_at is not None

    def test_unknown_user_and_wrong_password_look_the_same(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        _register(client, "login_enum")
        unknown = client.post("/api/auth/login", json={"username": "login_ghost", "password": "secret1"})
        wrong = client.post("/api/auth/login", json={"username": "login_enum", "password": "wrong12"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["message"] == "Invalid username or password"

    def test_login_validation_422(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        resp = client.post("/api/auth/login", json={"username": "x"})
        assert resp.status_code == 422
        assert set(resp.json()["errors"]) >= {"username", "password"}


class TestPasswordGrant:
    def test_token_success(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, store = api_client
        _register(client, "grant_ok")
        resp = client.post(
            "/api/auth/token",
            data={"grant_type": "password", "username": "grant_ok", "password": "secret1"},
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 3600
        assert body["username"] == "grant_ok"
        assert jwt.get_unverified_claims(body["access_token"])["sub"] == "grant_ok"
        assert resp.headers["Cache-Control"] == "no-store"
        # The password grant does not record the login.
        assert store.find_by_username("grant_ok").updated_at is None

    def test_grant_type_defaults_to_password(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        _register(client, "grant_default")
        resp = client.post("/api/auth/token", data={"username": "grant_default", "password": "secret1"})
        assert resp.status_code == 200

    def test_unsupported_grant_type(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        resp = client.post(
            "/api/auth/token",
            data={"grant_type": "client_credentials", "username": "whoever", "password": "secret1"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "unsupported_grant_type"

    def test_invalid_grant(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        _register(client, "grant_bad")
        wrong = client.post("/api/auth/token", data={"username": "grant_bad", "password": "wrong12"})
        unknown = client.post("/api/auth/token", data={"username": "grant_ghost", "password": "secret1"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"] == "invalid_grant"

    def test_missing_form_fields_422(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        resp = client.post("/api/auth/token", data={"grant_type": "password"})
        assert resp.status_code == 422
        assert set(resp.json()["errors"]) >= {"username", "password"}


class TestMe:
    def test_me_with_valid_token(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        token = _register(client, "me_user").json()["data"]["token"]
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["username"] == "me_user"
        assert data["tokenId"] == jwt.get_unverified_claims(token)["jti"]

    def test_me_without_token(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_me_with_tampered_token(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        client, _store = api_client
        token = _register(client, "me_tamper").json()["data"]["token"]
        header, payload, signature = token.split(".")
        forged = f"{header}.{payload}.{'B' if signature[0] == 'A' else 'A'}{signature[1:]}"
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
        assert resp.status_code == 401

    def test_me_with_token_missing_exp(self, api_client: tuple[TestClient, SqlUserStore]) -> None:
        """A correctly signed token without exp is a 401, not a 500."""
        client, _store = api_client
        settings = get_settings()
        token = jwt.encode(
            {"sub": "me_noexp", "jti": "b" * 32, "iss": settings.jwt_issuer, "aud": settings.jwt_audience, "iat": 0},
            settings.secret_key,
            algorithm="HS256",
        )
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["success"] is False


class TestStoreFailure:
    def test_store_outage_returns_generic_500(self, api_client: tuple[TestClient, SqlUserStore], monkeypatch) -> None:
        client, store = api_client

        def _boom(*args, **kwargs):
            raise RuntimeError("disk I/O error at /var/lib/db")

        monkeypatch.setattr(store, "find_by_username", _boom)

        envelope = client.post("/api/auth/login", json={"username": "outage", "password": "secret1"})
        assert envelope.status_code == 500
        assert envelope.json() == {"statusCode": 500, "success": False, "message": "Internal server error"}

        oauth = client.post("/api/auth/token", data={"username": "outage", "password": "secret1"})
        assert oauth.status_code == 500
        assert oauth.json()["error"] == "server_error"
        assert "disk" not in oauth.text


@pytest.fixture
def rate_limited(monkeypatch):
    """Switch the shared limiter on with fresh counters for one test."""
    limiter.reset()
    monkeypatch.setattr(limiter, "enabled", True)
    yield
    limiter.reset()


class TestRateLimit:
    def test_login_throttled_after_limit(self, api_client: tuple[TestClient, SqlUserStore], rate_limited) -> None:
        client, _store = api_client
        codes = [
            client.post("/api/auth/login", json={"username": "rl_ghost", "password": "secret1"}).status_code
            for _ in range(_LOGIN_LIMIT)
        ]
        assert codes == [401] * _LOGIN_LIMIT

        resp = client.post("/api/auth/login", json={"username": "rl_ghost", "password": "secret1"})
        assert resp.status_code == 429
        assert resp.json() == {"statusCode": 429, "success": False, "message": "Too many requests"}
        assert int(resp.headers["Retry-After"]) > 0

    def test_token_throttled_after_limit(self, api_client: tuple[TestClient, SqlUserStore], rate_limited) -> None:
        client, _store = api_client
        form = {"grant_type": "password", "username": "rl_ghost", "password": "secret1"}
        codes = [client.post("/api/auth/token", data=form).status_code for _ in range(_LOGIN_LIMIT)]
        assert codes == [401] * _LOGIN_LIMIT

        resp = client.post("/api/auth/token", data=form)
        assert resp.status_code == 429
        assert resp.json()["statusCode"] == 429
        assert "Retry-After" in resp.headers

    def test_register_is_not_throttled(self, api_client: tuple[TestClient, SqlUserStore], rate_limited) -> None:
        client, _store = api_client
        codes = [_register(client, f"rl_reg_{i}").status_code for i in range(_LOGIN_LIMIT + 2)]
        assert codes == [200] * (_LOGIN_LIMIT + 2)
