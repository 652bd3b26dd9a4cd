"""
tests/conftest.py -- Shared test fixtures for authgate tests.

This module provides:
  - FakeClock: a settable clock for SessionStore (float) and TokenService (datetime)
  - StubProviderAdapter: a requests transport that plays Google's token and
    userinfo endpoints, records every outbound request, and never touches the network
  - login_flow / token_service / credential_store: unit-level components
  - client: TestClient over the real app with a patched lifespan that wires
    the stub transport and the fake clock into app.state

Environment variables must be set before any core/api import: api.main reads
Settings at import time to configure TrustedHost and CORS, and the lifespan
refuses to start without Google client credentials.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional, Union

# CRITICAL: Set these before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "20/minute")

import pytest
import requests
from authlib.integrations.requests_client import OAuth2Session
from fastapi.testclient import TestClient
from requests.adapters import HTTPAdapter

from api.limiter import limiter
from asgi import app
from auth.oauth import DelegatedLoginFlow, ProviderConfig
from auth.store import DEMO_CREDENTIALS, CredentialStore, SessionStore
from auth.tokens import TokenService
from core.config import get_settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"

GOOGLE_PROFILE: dict[str, Any] = {
    "id": "109876543210987654321",
    "email": "ada@example.com",
    "verified_email": True,
    "name": "Ada Lovelace",
    "given_name": "Ada",
    "family_name": "Lovelace",
    "picture": "https://lh3.googleusercontent.com/a/ada",
    "locale": "en",
}

TOKEN_RESPONSE: dict[str, Any] = {
    "access_token": "ya29.test-provider-access-token",
    "token_type": "Bearer",
    "expires_in": 3599,
    "scope": "openid email profile",
}


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock. Call it for epoch seconds, .utc() for a datetime."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def utc(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Provider transport
# ---------------------------------------------------------------------------


def _make_response(request: requests.PreparedRequest, status: int, body: Union[bytes, dict, list]) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    resp.headers["Content-Type"] = "application/json"
    resp.url = request.url
    resp.request = request
    resp.encoding = "utf-8"
    resp.reason = "OK" if status < 400 else "Error"
    return resp


class StubProviderAdapter(HTTPAdapter):
    """Answers token-endpoint and userinfo requests from canned responses.

    Set token_response / userinfo_response to (status, body) to change the
    answers. Set error (all requests) or userinfo_error (userinfo only) to an
    exception instance to simulate a transport failure.
    """

    def __init__(self) -> None:
        super().__init__()
        self.requests: list[requests.PreparedRequest] = []
        self.token_response: tuple[int, Union[bytes, dict, list]] = (200, dict(TOKEN_RESPONSE))
        self.userinfo_response: tuple[int, Union[bytes, dict, list]] = (200, dict(GOOGLE_PROFILE))
        self.error: Optional[Exception] = None
        self.userinfo_error: Optional[Exception] = None

    @property
    def calls(self) -> int:
        return len(self.requests)

    def send(self, request, **kwargs):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if request.url.startswith(get_settings().google_token_url):
            status, body = self.token_response
        else:
            if self.userinfo_error is not None:
                raise self.userinfo_error
            status, body = self.userinfo_response
        return _make_response(request, status, body)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_adapter() -> StubProviderAdapter:
    return StubProviderAdapter()


@pytest.fixture
def session_factory(provider_adapter: StubProviderAdapter) -> Callable[..., OAuth2Session]:
    """OAuth2Session factory whose HTTPS traffic goes to the stub adapter."""

    def factory(**kwargs: Any) -> OAuth2Session:
        session = OAuth2Session(**kwargs)
        session.mount("https://", provider_adapter)
        return session

    return factory


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig.from_settings(get_settings())


@pytest.fixture
def login_flow(provider_config, session_factory, clock) -> DelegatedLoginFlow:
    return DelegatedLoginFlow(provider_config, SessionStore(ttl_seconds=3600, clock=clock), session_factory)


@pytest.fixture
def token_service(clock: FakeClock) -> TokenService:
    return TokenService(TEST_SECRET, clock=clock.utc)


@pytest.fixture
def credential_store() -> CredentialStore:
    return CredentialStore(DEMO_CREDENTIALS)


# ---------------------------------------------------------------------------
# App fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(session_factory: Callable[..., OAuth2Session], clock: FakeClock):
    """Return an async context manager that replaces the real lifespan.

    Builds the same components as api.main.lifespan but with the stub
    provider transport and the fake clock, so no test reaches Google and
    token/session expiry can be driven from the test.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.sessions = SessionStore(ttl_seconds=settings.session_expire_seconds, clock=clock)
        app.state.login_flow = DelegatedLoginFlow(
            ProviderConfig.from_settings(settings), app.state.sessions, session_factory
        )
        app.state.token_service = TokenService.from_settings(settings, clock=clock.utc)
        app.state.credentials = CredentialStore(DEMO_CREDENTIALS)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def client(session_factory, clock) -> Generator[TestClient, None, None]:
    """TestClient with follow_redirects=False and a fresh app.state per test.

    follow_redirects=False is essential: the browser-flow tests assert on
    redirect locations and on the cookies set by each hop.
    """
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(session_factory, clock)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield test_client
