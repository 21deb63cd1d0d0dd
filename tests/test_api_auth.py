"""
tests/test_api_auth.py -- Integration tests for /api/v1/auth/*.

Runs through the real ASGI stack (middleware, exception handlers, rate
limiter) with the api_client fixture's isolated database.

Coverage:
  - login sets the session cookie and returns the minimal user view
  - bad credentials: identical 401 body for unknown user and wrong password
  - /me via cookie and via Bearer header; 401 without either
  - logout revokes the token and clears the cookie; unknown token is 200
  - trusted x-user / x-role headers only when enabled
  - login rate limit returns 429
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.main import lifespan


@pytest.fixture(autouse=True)
def _clear_cookies(api_client: TestClient) -> None:
    api_client.cookies.clear()


def _login(client: TestClient, username: str = "alice", password: str = "wonderland"):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestLogin:
    def test_success_returns_token_and_user_view(self, api_client: TestClient) -> None:
        resp = _login(api_client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert len(data["token"]) == 64
        assert data["user"] == {"username": "alice", "role": "member"}
        assert "expires_at" in data
        assert resp.headers["Cache-Control"] == "no-store"

    def test_success_sets_http_only_cookie(self, api_client: TestClient) -> None:
        resp = _login(api_client)
        cookie = resp.headers["set-cookie"]
        assert cookie.startswith(f"diagram-studio-session={resp.json()['token']}")
        assert "HttpOnly" in cookie
        assert "Max-Age=604800" in cookie

    def test_bad_credentials_are_indistinguishable(self, api_client: TestClient) -> None:
        wrong_password = _login(api_client, "alice", "wrong")
        unknown_user = _login(api_client, "nobody", "wonderland")
        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.json()["error"]["message"] == "Invalid credentials"
        assert "set-cookie" not in wrong_password.headers

    def test_missing_fields_return_422_without_echoing_password(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/login", json={"password": "wonderland"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert "wonderland" not in resp.text

    def test_password_over_72_bytes_is_rejected(self, api_client: TestClient) -> None:
        # 40 Cyrillic characters: under the character cap, 80 bytes as UTF-8.
        resp = _login(api_client, "alice", "ж" * 40)
        assert resp.status_code == 422
        assert resp.json()["error"]["detail"] == "body.password"

    def test_rate_limit(self, api_client: TestClient) -> None:
        statuses = [_login(api_client, "alice", "wrong").status_code for _ in range(11)]
        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429


class TestMe:
    def test_bearer_token(self, api_client: TestClient) -> None:
        token = _login(api_client).json()["token"]
        api_client.cookies.clear()
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"] == "alice"
        assert data["role"] == "member"
        assert isinstance(data["user_id"], int)

    def test_cookie_from_login(self, api_client: TestClient) -> None:
        _login(api_client, "root", "wonderland")
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"

    def test_unauthenticated(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_unknown_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me", headers=_bearer("x" * 64))
        assert resp.status_code == 401


class TestLogout:
    def test_logout_revokes_token(self, api_client: TestClient) -> None:
        token = _login(api_client).json()["token"]
        api_client.cookies.clear()
        resp = api_client.post("/api/v1/auth/logout", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert api_client.get("/api/v1/auth/me", headers=_bearer(token)).status_code == 401

    def test_logout_clears_cookie(self, api_client: TestClient) -> None:
        _login(api_client)
        resp = api_client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert 'diagram-studio-session=""' in resp.headers["set-cookie"]
        assert api_client.get("/api/v1/auth/me").status_code == 401

    def test_logout_unknown_token_is_success(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/logout", headers=_bearer("y" * 64))
        assert resp.status_code == 200
        assert resp.json() == {"success": True}


class TestTrustedHeaders:
    @pytest.fixture
    def trusted(self, api_client: TestClient) -> Generator[TestClient, None, None]:
        original = api_client.app.state.settings
        api_client.app.state.settings = original.model_copy(update={"trusted_header_auth": True})
        yield api_client
        api_client.app.state.settings = original

    def test_ignored_by_default(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me", headers={"x-user": "mallory", "x-role": "admin"})
        assert resp.status_code == 401

    def test_accepted_when_enabled(self, trusted: TestClient) -> None:
        resp = trusted.get("/api/v1/auth/me", headers={"x-user": "svc-render", "x-role": "service"})
        assert resp.status_code == 200
        assert resp.json() == {"user": "svc-render", "role": "service", "user_id": None}

    def test_both_headers_required(self, trusted: TestClient) -> None:
        resp = trusted.get("/api/v1/auth/me", headers={"x-user": "svc-render"})
        assert resp.status_code == 401


def test_lifespan_applies_session_ttl_days(tmp_path, monkeypatch, fresh_settings) -> None:
    monkeypatch.setenv("AUTH_DATABASE_URL", f"sqlite:///{tmp_path / 'auth.db'}")
    monkeypatch.setenv("SESSION_TTL_DAYS", "1")
    with TestClient(FastAPI(lifespan=lifespan)) as client:
        assert client.app.state.session_service.ttl == timedelta(days=1)
