"""
tests/test_logout.py -- Logout endpoint tests.

Coverage:
  - 303 to the logout path (defaults to the landing path)
  - the logout response rewrites the session cookie and expires it
  - replaying the logout cookie is rejected on both stores
  - MemoryStore also rejects a cookie captured before logout
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import LANDING, TEST_SECRET, FakeClock, StubVerifier, accept_test_user, login, send, session_cookie, set_cookie_header
from sessionauth.errors import SessionStoreError
from sessionauth.stores import CookieStore, MemoryStore


class _FailingSaveStore(CookieStore):
    def save(self, request, response, session) -> None:
        raise SessionStoreError("disk full")


def _login_cookie(client: TestClient, verifier: StubVerifier) -> str:
    verifier.check_mock = accept_test_user
    cookie = session_cookie(login(client))
    assert cookie
    return cookie


class TestLogoutRedirect:
    def test_defaults_to_landing(self, client: TestClient) -> None:
        resp = send(client, "GET", "/logout")
        assert resp.status_code == 303
        assert resp.headers["location"] == LANDING

    def test_custom_logout_path(self, make_client) -> None:
        client = make_client(logout_path="/goodbye")
        resp = send(client, "POST", "/logout")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/goodbye"

    def test_logout_without_session_still_redirects(self, client: TestClient) -> None:
        resp = send(client, "GET", "/logout")
        assert resp.status_code == 303
        assert session_cookie(resp) is not None

    def test_store_failure_is_500(self, make_client) -> None:
        client = make_client(_FailingSaveStore(TEST_SECRET))
        resp = send(client, "GET", "/logout")
        assert resp.status_code == 500
        assert resp.text == "disk full"


class TestLogoutCookie:
    def test_cookie_changes_and_expires(self, client: TestClient, verifier: StubVerifier) -> None:
        verifier.check_mock = accept_test_user
        login_resp = login(client)
        before = session_cookie(login_resp)

        resp = send(client, "GET", "/logout", cookie=before)
        after = session_cookie(resp)
        assert after is not None
        assert after != before
        assert set_cookie_header(resp) != set_cookie_header(login_resp)
        assert "Max-Age=0" in set_cookie_header(resp)

    def test_logout_cookie_is_rejected(self, client: TestClient, verifier: StubVerifier) -> None:
        before = _login_cookie(client, verifier)
        assert send(client, "GET", "/me", cookie=before).status_code == 200

        after = session_cookie(send(client, "GET", "/logout", cookie=before))
        resp = send(client, "GET", "/me", cookie=after)
        assert resp.status_code == 401
        assert resp.text == "Not Authorized"

    def test_logout_cookie_is_rejected_memory(self, memory_client: TestClient, verifier: StubVerifier) -> None:
        before = _login_cookie(memory_client, verifier)
        after = session_cookie(send(memory_client, "GET", "/logout", cookie=before))
        resp = send(memory_client, "GET", "/me", cookie=after)
        assert resp.status_code == 401
        assert resp.text == "Not Authorized"


class TestMemoryStoreLogout:
    def test_pre_logout_cookie_is_rejected(self, make_client, verifier: StubVerifier, clock: FakeClock) -> None:
        store = MemoryStore(TEST_SECRET, clock=clock)
        client = make_client(store)
        before = _login_cookie(client, verifier)
        assert store.active_sessions() == 1

        send(client, "GET", "/logout", cookie=before)
        assert store.active_sessions() == 0
        assert send(client, "GET", "/me", cookie=before).status_code == 401

    def test_relogin_after_logout(self, make_client, verifier: StubVerifier, clock: FakeClock) -> None:
        store = MemoryStore(TEST_SECRET, clock=clock)
        client = make_client(store)
        first = _login_cookie(client, verifier)
        send(client, "GET", "/logout", cookie=first)

        second = _login_cookie(client, verifier)
        assert second != first
        assert send(client, "GET", "/me", cookie=second).json() == {"identity": 23}
