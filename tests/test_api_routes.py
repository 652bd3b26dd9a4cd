"""
tests/test_api_routes.py -- Integration tests for the bearer-token API.

Coverage:
  - POST /api/v1/login: success (lifetimes, no-store), wrong password and
    unknown user give the same 401, invalid body is 400, rate limit is 429
  - POST /api/v1/refresh: rotation, access token rejected, garbage rejected
  - GET /api/v1/protected/user: success, missing header, malformed header,
    wrong scheme, refresh token as bearer, expired token, tampered token
  - GET /api/v1/health: no auth, no session data
"""

from __future__ import annotations

import pytest


def _login(client, username: str = "admin", password: str = "admin123") -> dict:
    resp = client.post("/api/v1/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestLogin:
    def test_admin_login(self, client) -> None:
        resp = client.post("/api/v1/login", json={"username": "admin", "password": "admin123"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 900
        assert data["refresh_expires_in"] == 604800
        assert data["access_token"].count(".") == 2
        assert data["refresh_token"].count(".") == 2

    def test_wrong_password(self, client) -> None:
        resp = client.post("/api/v1/login", json={"username": "admin", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_unknown_user_same_error(self, client) -> None:
        unknown = client.post("/api/v1/login", json={"username": "nobody", "password": "admin123"})
        wrong = client.post("/api/v1/login", json={"username": "admin", "password": "wrong"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"username": "admin"},
            {"password": "admin123"},
            {"username": "", "password": "admin123"},
            {"username": "admin", "password": ""},
            {"username": "admin", "password": "x" * 73},
        ],
    )
    def test_invalid_body(self, client, body) -> None:
        resp = client.post("/api/v1/login", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_request"

    def test_password_limit_counts_utf8_bytes(self, client) -> None:
        # 72 characters but 144 bytes: past what bcrypt can hash.
        resp = client.post("/api/v1/login", json={"username": "admin", "password": "\u00e9" * 72})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_request"

        resp = client.post("/api/v1/login", json={"username": "admin", "password": "\u00e9" * 36})
        assert resp.status_code == 401

    def test_rate_limited(self, client) -> None:
        # conftest sets LOGIN_RATE_LIMIT=20/minute; the fixture resets the counters.
        statuses = [
            client.post("/api/v1/login", json={"username": "admin", "password": "wrong"}).status_code
            for _ in range(21)
        ]
        assert statuses[:20] == [401] * 20
        assert statuses[20] == 429

    def test_rate_limit_response_shape(self, client) -> None:
        for _ in range(20):
            client.post("/api/v1/login", json={"username": "admin", "password": "wrong"})
        resp = client.post("/api/v1/login", json={"username": "admin", "password": "admin123"})
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert "retry-after" in resp.headers


class TestRefresh:
    def test_rotation(self, client, clock) -> None:
        tokens = _login(client, "user1", "user123")
        clock.advance(10)

        resp = client.post("/api/v1/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        renewed = resp.json()
        assert renewed["access_token"] != tokens["access_token"]
        assert renewed["expires_in"] == 900

        me = client.get(
            "/api/v1/protected/user",
            headers={"Authorization": f"Bearer {renewed['access_token']}"},
        ).json()
        assert me["username"] == "user1"
        assert me["email"] == "user1@example.com"

    def test_access_token_rejected(self, client) -> None:
        tokens = _login(client)
        resp = client.post("/api/v1/refresh", json={"refresh_token": tokens["access_token"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_refresh_token"

    def test_garbage_rejected(self, client) -> None:
        resp = client.post("/api/v1/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_refresh_token"

    def test_missing_body(self, client) -> None:
        resp = client.post("/api/v1/refresh", json={})
        assert resp.status_code == 400


class TestProtected:
    def test_success(self, client, clock) -> None:
        tokens = _login(client)
        resp = client.get("/api/v1/protected/user", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == 1
        assert data["username"] == "admin"
        assert data["email"] == "admin@example.com"
        assert data["issued_at"] == int(clock.now)
        assert data["expires_at"] == int(clock.now) + 900

    def test_missing_header(self, client) -> None:
        resp = client.get("/api/v1/protected/user")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.json()["error"]["code"] == "missing_authorization"

    @pytest.mark.parametrize("header", ["Bearer", "Bearer ", "Basic abc", "bearer abc", "Bearer a b", "Token"])
    def test_bad_header_format(self, client, header) -> None:
        resp = client.get("/api/v1/protected/user", headers={"Authorization": header})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_authorization"

    def test_refresh_token_as_bearer(self, client) -> None:
        tokens = _login(client)
        resp = client.get("/api/v1/protected/user", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "wrong_token_kind"

    def test_expired(self, client, clock) -> None:
        tokens = _login(client)
        clock.advance(900)
        resp = client.get("/api/v1/protected/user", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "token_expired"

    def test_tampered(self, client) -> None:
        tokens = _login(client)
        header, claims, signature = tokens["access_token"].split(".")
        flipped = ("A" if claims[5] != "A" else "B").join([claims[:5], claims[6:]])
        resp = client.get("/api/v1/protected/user", headers={"Authorization": f"Bearer {header}.{flipped}.{signature}"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_signature"

    def test_malformed(self, client) -> None:
        resp = client.get("/api/v1/protected/user", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "malformed_token"


class TestHealth:
    def test_no_auth_required(self, client) -> None:
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["version"]
        assert set(data) == {"status", "version"}

    def test_unknown_host_rejected(self, client) -> None:
        resp = client.get("/api/v1/health", headers={"Host": "evil.example.com"})
        assert resp.status_code == 400
