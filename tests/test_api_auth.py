"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth/* endpoints.

Covers:
  - register: 201 + token pair, camelCase wire names, no-store, 409 duplicate, 400 validation
  - login: 200 + pair; wrong password and unknown email return identical 401 bodies [C1]
  - refresh: rotation, replayed token -> 401, missing token -> 400
  - logout: always 200 (valid, replayed, missing, non-JSON or too deeply nested body)
  - me: 200 with Bearer access token; 401 for missing/refresh/expired/garbage tokens
  - me: 404 when the account vanishes after authentication
"""

from __future__ import annotations

import time
import uuid

import pytest

from auth.models import TokenType
from auth.tokens import TokenCodec

PASSWORD = "Password123!"
UNAUTHORIZED = {"error": {"code": "unauthorized", "message": "Invalid or expired token."}}


def unique_email() -> str:
    return f"user_{uuid.uuid4().hex[:12]}@example.com"


def _register(client, email: str | None = None, **extra):
    body = {"email": email or unique_email(), "password": PASSWORD, **extra}
    resp = client.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_returns_token_pair(self, api_client):
        client, _ = api_client
        email = unique_email()
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": PASSWORD, "firstName": "Ada", "lastName": "Lovelace"},
        )
        assert resp.status_code == 201
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["tokenType"] == "Bearer"
        assert data["accessToken"] and data["refreshToken"]
        assert data["accessTokenExpiresAt"] < data["refreshTokenExpiresAt"]
        assert data["user"]["email"] == email
        assert data["user"]["firstName"] == "Ada"
        assert data["user"]["lastName"] == "Lovelace"
        assert "passwordHash" not in data["user"]
        assert "refreshTokens" not in data["user"]

    def test_stored_hash_is_not_the_password(self, api_client):
        client, store = api_client
        resp = client.post("/api/v1/auth/register", json={"email": "a@b.com", "password": "Password123!"})
        assert resp.status_code == 201
        stored = store.get_by_email("a@b.com")
        assert stored.password_hash
        assert stored.password_hash != "Password123!"

    def test_duplicate_email(self, api_client):
        client, _ = api_client
        email = unique_email()
        _register(client, email)
        resp = client.post("/api/v1/auth/register", json={"email": email.upper(), "password": PASSWORD})
        assert resp.status_code == 409
        assert resp.json() == {"error": {"code": "conflict", "message": "Email is already registered"}}

    def test_short_password(self, api_client):
        client, _ = api_client
        resp = client.post("/api/v1/auth/register", json={"email": unique_email(), "password": "short"})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Password must be at least 8 characters"

    @pytest.mark.parametrize("body", [{}, {"email": "x@example.com"}, {"password": PASSWORD}])
    def test_missing_fields(self, api_client, body):
        client, _ = api_client
        resp = client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"


class TestLogin:
    def test_success(self, api_client):
        client, _ = api_client
        registered = _register(client)
        resp = client.post(
            "/api/v1/auth/login", json={"email": registered["user"]["email"], "password": PASSWORD}
        )
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.json()["user"]["id"] == registered["user"]["id"]

    def test_wrong_password_and_unknown_email_are_identical(self, api_client):
        client, _ = api_client
        registered = _register(client)
        wrong_password = client.post(
            "/api/v1/auth/login", json={"email": registered["user"]["email"], "password": "WrongPass!"}
        )
        unknown_email = client.post("/api/v1/auth/login", json={"email": unique_email(), "password": PASSWORD})
        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json()
        assert wrong_password.json()["error"]["message"] == "Invalid credentials"
        assert wrong_password.headers["WWW-Authenticate"] == "Bearer"

    def test_missing_password(self, api_client):
        client, _ = api_client
        resp = client.post("/api/v1/auth/login", json={"email": unique_email()})
        assert resp.status_code == 400


class TestRefresh:
    def test_rotation_is_single_use(self, api_client):
        client, _ = api_client
        registered = _register(client)
        old_token = registered["refreshToken"]

        first = client.post("/api/v1/auth/refresh", json={"refreshToken": old_token})
        assert first.status_code == 200
        assert first.headers["Cache-Control"] == "no-store"
        new_token = first.json()["refreshToken"]
        assert new_token != old_token

        replay = client.post("/api/v1/auth/refresh", json={"refreshToken": old_token})
        assert replay.status_code == 401
        assert replay.json()["error"]["message"] == "Invalid or expired refresh token"

        assert client.post("/api/v1/auth/refresh", json={"refreshToken": new_token}).status_code == 200

    def test_missing_token(self, api_client):
        client, _ = api_client
        resp = client.post("/api/v1/auth/refresh", json={})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "refreshToken is required"

    def test_access_token_rejected(self, api_client):
        client, _ = api_client
        registered = _register(client)
        resp = client.post("/api/v1/auth/refresh", json={"refreshToken": registered["accessToken"]})
        assert resp.status_code == 401

    def test_garbage_rejected(self, api_client):
        client, _ = api_client
        resp = client.post("/api/v1/auth/refresh", json={"refreshToken": "not.a.token"})
        assert resp.status_code == 401


class TestLogout:
    def test_revokes_refresh_token(self, api_client):
        client, _ = api_client
        registered = _register(client)
        resp = client.post("/api/v1/auth/logout", json={"refreshToken": registered["refreshToken"]})
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out"}
        after = client.post("/api/v1/auth/refresh", json={"refreshToken": registered["refreshToken"]})
        assert after.status_code == 401

    def test_repeat_logout(self, api_client):
        client, _ = api_client
        registered = _register(client)
        for _ in range(2):
            resp = client.post("/api/v1/auth/logout", json={"refreshToken": registered["refreshToken"]})
            assert resp.status_code == 200

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"json": {}},
            {"json": {"refreshToken": "garbage"}},
            {"json": {"refreshToken": 42}},
            {"json": ["not", "an", "object"]},
            {"content": b"not json", "headers": {"Content-Type": "application/json"}},
            {"content": b"[" * 100_000, "headers": {"Content-Type": "application/json"}},
        ],
    )
    def test_always_succeeds(self, api_client, kwargs):
        client, _ = api_client
        resp = client.post("/api/v1/auth/logout", **kwargs)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out"}


class TestMe:
    def test_returns_current_user(self, api_client):
        client, _ = api_client
        registered = _register(client, firstName="Grace")
        resp = client.get("/api/v1/auth/me", headers=_bearer(registered["accessToken"]))
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["id"] == registered["user"]["id"]
        assert user["firstName"] == "Grace"
        assert "passwordHash" not in user

    def test_missing_header(self, api_client):
        client, _ = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_refresh_token_rejected(self, api_client):
        client, _ = api_client
        registered = _register(client)
        resp = client.get("/api/v1/auth/me", headers=_bearer(registered["refreshToken"]))
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED

    def test_expired_token(self, api_client, settings_factory):
        client, _ = api_client
        registered = _register(client)
        stale = TokenCodec(clock=lambda: time.time() - 3600).sign(
            registered["user"]["id"], TokenType.ACCESS, settings_factory().access_token_secret, 900
        )
        resp = client.get("/api/v1/auth/me", headers=_bearer(stale.token))
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED

    @pytest.mark.parametrize("header", ["Bearer garbage", "Token abc", "Bearer a.b.c"])
    def test_bad_headers_are_indistinguishable(self, api_client, header):
        client, _ = api_client
        resp = client.get("/api/v1/auth/me", headers={"Authorization": header})
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED

    def test_deleted_account(self, api_client):
        client, store = api_client
        registered = _register(client)
        store.delete_user(registered["user"]["id"])
        resp = client.get("/api/v1/auth/me", headers=_bearer(registered["accessToken"]))
        assert resp.status_code == 401

    def test_account_vanishes_after_authentication(self, api_client, monkeypatch):
        """The bearer check sees the user; the profile lookup that follows does not."""
        client, store = api_client
        registered = _register(client)
        real_get_by_id = store.get_by_id
        calls = []

        def vanishing_get_by_id(user_id):
            calls.append(user_id)
            return real_get_by_id(user_id) if len(calls) == 1 else None

        monkeypatch.setattr(store, "get_by_id", vanishing_get_by_id)
        resp = client.get("/api/v1/auth/me", headers=_bearer(registered["accessToken"]))
        assert resp.status_code == 404
        assert resp.json() == {"error": {"code": "not_found", "message": "User not found"}}
