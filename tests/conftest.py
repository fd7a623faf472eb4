"""
tests/conftest.py -- Shared test fixtures for session-auth integration tests.

This module provides:
  - StubVerifier: a Verifier whose check() behaviour each test swaps in
  - FakeClock: a movable "now" injected through with_clock()
  - make_client(): builds the real FastAPI app around a store and returns a
    TestClient with follow_redirects=False
  - cookie helpers for replaying Set-Cookie values by hand

Design: tests replay cookies explicitly through the Cookie header and clear
the client's own jar before each request. The jar drops cookies sent with
Max-Age=0, and logout tests need to resend exactly those cookies.

The DEBUG env var must be set before any core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from typing import Any

# CRITICAL: Set DEBUG before any core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from core.config import Settings
from sessionauth.errors import BadLoginError
from sessionauth.keys import register_session_types
from sessionauth.options import Option, with_clock
from sessionauth.session import SessionStore
from sessionauth.stores import CookieStore, MemoryStore

TEST_SECRET = "x" * 48
SESSION_NAME = "AuthSession"
LANDING = "/landingRedir"

register_session_types()


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class StubVerifier:
    """Verifier double. Tests replace check_mock; calls are recorded."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.check_mock: Callable[[str, str], Any] = self._reject

    @staticmethod
    def _reject(user: str, password: str) -> Any:
        raise BadLoginError()

    def check(self, user: str, password: str) -> Any:
        self.calls.append((user, password))
        return self.check_mock(user, password)


def accept_test_user(user: str, password: str) -> Any:
    """Maps exactly testUser/testPassw to identity 23."""
    if not (user == "testUser" and password == "testPassw"):
        raise BadLoginError()
    return 23


class FakeClock:
    """Settable clock; starts at a fixed instant and only moves when told to."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def session_cookie(resp: httpx.Response, name: str = SESSION_NAME) -> str | None:
    """Return the value of the session cookie set by resp, or None."""
    for header in resp.headers.get_list("set-cookie"):
        parsed: SimpleCookie = SimpleCookie()
        parsed.load(header)
        if name in parsed:
            return parsed[name].value
    return None


def set_cookie_header(resp: httpx.Response, name: str = SESSION_NAME) -> str:
    """Return the raw Set-Cookie header for the session cookie ("" if none)."""
    for header in resp.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header
    return ""


def send(client: TestClient, method: str, path: str, cookie: str | None = None, **kwargs: Any) -> httpx.Response:
    """Issue a request carrying only the given session cookie value."""
    client.cookies.clear()
    headers = dict(kwargs.pop("headers", {}) or {})
    if cookie is not None:
        headers["Cookie"] = f"{SESSION_NAME}={cookie}"
    return client.request(method, path, headers=headers, **kwargs)


def login(client: TestClient, user: str = "testUser", password: str = "testPassw") -> httpx.Response:
    return send(client, "POST", "/login", data={"user": user, "pass": password})


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "secret_key": TEST_SECRET,
        "session_name": SESSION_NAME,
        "landing_path": LANDING,
        "session_lifetime_seconds": 300,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def verifier() -> StubVerifier:
    return StubVerifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(
    verifier: StubVerifier, clock: FakeClock
) -> Generator[Callable[..., TestClient], None, None]:
    """Factory fixture: make_client(store=None, *options, **settings) -> TestClient.

    The clock fixture is always injected so tests can move time. Clients are
    closed on teardown.
    """
    clients: list[TestClient] = []

    def factory(store: SessionStore | None = None, *options: Option, **settings: Any) -> TestClient:
        app = create_app(
            verifier,
            settings=make_settings(**settings),
            store=store if store is not None else CookieStore(TEST_SECRET),
            extra_options=(with_clock(clock), *options),
        )
        client = TestClient(app, follow_redirects=False, raise_server_exceptions=True)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    """TestClient over the default CookieStore."""
    return make_client()


@pytest.fixture
def memory_client(make_client: Callable[..., TestClient], clock: FakeClock) -> TestClient:
    """TestClient over a MemoryStore (server-side session records) sharing the fake clock."""
    return make_client(MemoryStore(TEST_SECRET, clock=clock))
