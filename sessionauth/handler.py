"""
sessionauth/handler.py -- Login, request gating and logout over a session store.

AuthHandler exposes three HTTP-facing pieces the integrator binds to routes:

  authorize     -- Starlette endpoint for the login form POST (fields user, pass)
  logout        -- Starlette endpoint that invalidates the session
  authenticate  -- wrapper that gates a downstream endpoint

plus two programmatic entry points that raise instead of responding:

  save_user_session     -- log a request in with an already-known identity
  authenticate_request  -- return the session identity or raise

Session state machine:
  A session is authenticated iff it is not new, carries both SessionKey.IDENTITY
  and SessionKey.EXPIRY, EXPIRY is a datetime, and now < EXPIRY. Login writes
  EXPIRY = now + lifetime; logout writes EXPIRY = now - lifetime and asks the
  store to drop the cookie. Authenticated requests never touch EXPIRY, so the
  lifetime is absolute from login.

The handler holds only configuration fixed at construction. All mutable
state is the request's own session, loaded and saved through the store, so one
handler serves concurrent requests without locking.

Layer rule: may import from core/ (timecodec). No imports from api/.
"""

from __future__ import annotations

import functools
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from core.timecodec import as_utc, utcnow
from sessionauth.errors import (
    AuthError,
    BadLoginError,
    BadMethodError,
    BodyParseError,
    ConfigError,
    ErrorKind,
    NotAuthorizedError,
    SessionStoreError,
    VerifierError,
    is_kind,
)
from sessionauth.keys import SessionKey, session_types_registered
from sessionauth.options import Clock, ErrorHandler, NotAuthorizedHandler, Option, _Builder
from sessionauth.session import Session, SessionStore, Verifier

logger = logging.getLogger("sessionauth.handler")

DEFAULT_SESSION_NAME = "AuthSession"
DEFAULT_LIFETIME = timedelta(minutes=5)
DEFAULT_LANDING = "/"

Endpoint = Callable[[Request], Any]


def default_error_handler(request: Request, error: Exception, status_code: int) -> Response:
    """Write the error text as a plain-text body with the given status."""
    return PlainTextResponse(str(error), status_code=status_code)


async def _resolve(result: Response | Awaitable[Response]) -> Response:
    if inspect.isawaitable(result):
        return await result
    return result


class AuthHandler:
    """Session authentication for one cookie name and one verifier.

    Build with new_handler(); attributes are read-only after construction.
    """

    __slots__ = (
        "_verifier",
        "_store",
        "_session_name",
        "_lifetime",
        "_redir_landing",
        "_redir_logout",
        "_error_handler",
        "_not_authorized_handler",
        "_clock",
    )

    def __init__(self, verifier: Verifier, b: _Builder) -> None:
        self._verifier = verifier
        self._store: SessionStore = b.store
        self._session_name: str = b.session_name
        self._lifetime: timedelta = b.lifetime
        self._redir_landing: str = b.redir_landing
        self._redir_logout: str = b.redir_logout
        self._error_handler: ErrorHandler = b.error_handler
        self._not_authorized_handler: NotAuthorizedHandler = b.not_authorized_handler
        self._clock: Clock = b.clock

    # ------------------------------------------------------------------
    # Read-only configuration
    # ------------------------------------------------------------------

    @property
    def session_name(self) -> str:
        return self._session_name

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    @property
    def landing_path(self) -> str:
        return self._redir_landing

    @property
    def logout_path(self) -> str:
        return self._redir_logout

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def authorize(self, request: Request) -> Response:
        """Check the posted user/pass and start a session on success.

        Validation order: method, form parse, non-empty fields. Empty fields
        are rejected as a bad login without calling the verifier.
        """
        if request.method != "POST":
            return await self._fail(request, BadMethodError())

        try:
            form = await request.form()
        except (HTTPException, MultiPartException, UnicodeDecodeError, ValueError) as exc:
            logger.warning("Login form could not be parsed: %s", exc)
            return await self._fail(request, BodyParseError())

        user = form.get("user") or ""
        password = form.get("pass") or ""
        if not isinstance(user, str) or not isinstance(password, str) or not user or not password:
            return await self._fail(request, BadLoginError())

        try:
            identity = await run_in_threadpool(self._verifier.check, user, password)
        except Exception as exc:
            if is_kind(exc, ErrorKind.BAD_LOGIN):
                logger.info("Login rejected for user %r", user)
                return await self._fail(request, exc)
            logger.exception("Verifier failed for user %r", user)
            return await self._fail(request, VerifierError())

        response = RedirectResponse(self._redir_landing, status_code=303)
        response.headers["Cache-Control"] = "no-store"
        try:
            self.save_user_session(request, response, identity)
        except SessionStoreError as exc:
            return await self._fail(request, exc)

        logger.info("Login succeeded for user %r", user)
        return response

    def save_user_session(self, request: Request, response: Response, identity: Any) -> None:
        """Authenticate request/response with identity, bypassing the verifier.

        Writes the identity and a fresh absolute expiry into the session and
        saves it into response under a new session id, so an id planted before
        login never becomes an authenticated one. Raises SessionStoreError on
        failure.
        """
        session = self._load_session(request)
        self._regenerate(session)
        session.values[SessionKey.IDENTITY] = identity
        session.values[SessionKey.EXPIRY] = self._now() + self._lifetime
        self._save_session(session, request, response)

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def authenticate(self, endpoint: Endpoint) -> Callable[[Request], Awaitable[Response]]:
        """Wrap endpoint so it only runs for authenticated requests.

        The identity is not injected into the request; the endpoint calls
        authenticate_request() (or depends on require_identity) if it needs it.
        """

        @functools.wraps(endpoint)
        async def gated(request: Request) -> Response:
            try:
                self.authenticate_request(request)
            except AuthError as exc:
                if not is_kind(exc, ErrorKind.NOT_AUTHORIZED):
                    logger.error("Session check failed on %s: %s", request.url.path, exc)
                return await _resolve(self._not_authorized_handler(request))
            if inspect.iscoroutinefunction(endpoint):
                return await endpoint(request)
            return await run_in_threadpool(endpoint, request)

        return gated

    def authenticate_request(self, request: Request) -> Any:
        """Return the identity stored in the request's session.

        Raises NotAuthorizedError for a new, incomplete, malformed or expired
        session, and SessionStoreError if the store cannot load at all.
        Never modifies the session.
        """
        session = self._load_session(request)

        if session.is_new:
            raise self._not_authorized(request, "no session")
        if SessionKey.IDENTITY not in session.values:
            raise self._not_authorized(request, "session has no identity")
        if SessionKey.EXPIRY not in session.values:
            raise self._not_authorized(request, "session has no expiry")

        expiry = session.values[SessionKey.EXPIRY]
        if not isinstance(expiry, datetime):
            raise self._not_authorized(request, "session expiry is malformed")
        if not self._now() < as_utc(expiry):
            raise self._not_authorized(request, "session expired")

        return session.values[SessionKey.IDENTITY]

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self, request: Request) -> Response:
        """Invalidate the session and redirect to the logout path.

        The expiry is back-dated by one lifetime before the store is told to
        remove the cookie, so the issued cookie fails validation even if a
        client keeps sending it.
        """
        response = RedirectResponse(self._redir_logout, status_code=303)
        try:
            session = self._load_session(request)
            session.values[SessionKey.EXPIRY] = self._now() - self._lifetime
            session.options.max_age = -1
            self._save_session(session, request, response)
        except SessionStoreError as exc:
            return await self._fail(request, exc)

        logger.info("Logged out session %r", self._session_name)
        return response

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_session(self, request: Request) -> Session:
        try:
            return self._store.get(request, self._session_name)
        except SessionStoreError:
            logger.exception("Session store could not load %r", self._session_name)
            raise
        except Exception as exc:
            logger.exception("Session store could not load %r", self._session_name)
            raise SessionStoreError(f"could not load session {self._session_name!r}") from exc

    def _save_session(self, session: Session, request: Request, response: Response) -> None:
        try:
            session.save(request, response)
        except SessionStoreError:
            logger.exception("Session store could not save %r", self._session_name)
            raise
        except Exception as exc:
            logger.exception("Session store could not save %r", self._session_name)
            raise SessionStoreError(f"could not save session {self._session_name!r}") from exc

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _regenerate(self, session: Session) -> None:
        regenerate = getattr(self._store, "regenerate", None)
        if regenerate is None:
            return
        try:
            regenerate(session)
        except SessionStoreError:
            logger.exception("Session store could not renew %r", self._session_name)
            raise
        except Exception as exc:
            logger.exception("Session store could not renew %r", self._session_name)
            raise SessionStoreError(f"could not renew session {self._session_name!r}") from exc

    @staticmethod
    def _not_authorized(request: Request, reason: str) -> NotAuthorizedError:
        logger.debug("Not authorized on %s: %s", request.url.path, reason)
        return NotAuthorizedError()

    async def _fail(self, request: Request, error: AuthError) -> Response:
        return await _resolve(self._error_handler(request, error, error.status_code))


def new_handler(verifier: Verifier, *options: Option) -> AuthHandler:
    """Build an AuthHandler from verifier and options.

    Raises ConfigError if an option rejects its argument, if no session store
    was configured, or if register_session_types() has not been called.
    """
    if verifier is None:
        raise ConfigError("verifier must not be None")
    b = _Builder()
    for option in options:
        option(b)

    if b.store is None:
        raise ConfigError("please set a session store")
    if not session_types_registered():
        raise ConfigError("session types not registered; call register_session_types() at startup")

    if b.lifetime is None:
        b.lifetime = DEFAULT_LIFETIME
    if not b.redir_landing:
        b.redir_landing = DEFAULT_LANDING
    if not b.redir_logout:
        b.redir_logout = b.redir_landing
    if not b.session_name:
        b.session_name = DEFAULT_SESSION_NAME
    if b.error_handler is None:
        b.error_handler = default_error_handler
    if b.not_authorized_handler is None:
        error_handler = b.error_handler

        def not_authorized(request: Request) -> Response | Awaitable[Response]:
            return error_handler(request, NotAuthorizedError(), NotAuthorizedError.status_code)

        b.not_authorized_handler = not_authorized
    if b.clock is None:
        b.clock = utcnow

    return AuthHandler(verifier, b)
