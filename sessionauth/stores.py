"""
sessionauth/stores.py -- Signed-cookie session stores.

Two SessionStore implementations share one cookie layer:

  CookieStore: the encoded session values travel inside the cookie itself.
      Stateless; nothing is kept in the process. A cookie captured before
      logout still carries its original expiry, so only the expiry check
      protects against replay within the lifetime window.

  MemoryStore: the cookie carries only a random session id; the encoded
      values live in a process-local dict. Logout deletes the record, so a
      cookie captured before logout resolves to a new session afterwards.
      Login moves the session to a fresh id. Expired records are evicted.
      Records are not shared between worker processes and do not survive
      restart.

Signing: python-jose HS256 with the application SECRET_KEY, the same
primitive the rest of the stack uses for signed tokens. Verification failure
never raises -- the request simply gets a new session, and the failure is
logged. Values are encoded with sessionauth.keys.encode_values(), so
register_session_types() must have run before the first save.

Layer rule: may import from core/ (timecodec). No imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from jose import JWTError, jwt
from starlette.requests import Request
from starlette.responses import Response

from core.timecodec import as_utc, utcnow
from sessionauth.errors import SessionStoreError
from sessionauth.keys import SessionKey, decode_values, encode_values
from sessionauth.session import CookieOptions, Session

logger = logging.getLogger("sessionauth.stores")

_ALGORITHM = "HS256"

# Record lifetime for MemoryStore sessions saved without Max-Age and without
# an auth expiry (browser-session cookies).
_FALLBACK_MAX_AGE = 24 * 60 * 60


@dataclass(frozen=True)
class _Record:
    payload: str
    deadline: datetime


class _SignedCookieStore:
    """Shared signing and cookie-writing logic. Subclasses define the payload."""

    def __init__(self, secret_key: str, options: CookieOptions | None = None) -> None:
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self.options = options or CookieOptions()

    # ------------------------------------------------------------------
    # SessionStore protocol
    # ------------------------------------------------------------------

    def get(self, request: Request, name: str) -> Session:
        session = Session(name=name, store=self, options=self.options.copy())
        raw = request.cookies.get(name)
        if not raw:
            return session
        claims = self._verify(raw, name)
        if claims is None:
            return session
        self._load(session, claims)
        return session

    def save(self, request: Request, response: Response, session: Session) -> None:
        claims = self._dump(session)
        try:
            token = jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)
        except JWTError as exc:
            raise SessionStoreError("could not sign session cookie") from exc
        self._write_cookie(response, session, token)

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    def _load(self, session: Session, claims: dict) -> None:
        raise NotImplementedError

    def _dump(self, session: Session) -> dict:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _verify(self, raw: str, name: str) -> dict | None:
        try:
            return jwt.decode(raw, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            logger.warning("Rejected session cookie %r: bad signature or format", name)
            return None

    @staticmethod
    def _write_cookie(response: Response, session: Session, value: str) -> None:
        opts = session.options
        max_age: int | None = opts.max_age if opts.max_age > 0 else None
        expires: int | None = None
        if opts.max_age < 0:
            # Same attributes Starlette's delete_cookie() writes.
            max_age, expires = 0, 0
        response.set_cookie(
            session.name,
            value=value,
            max_age=max_age,
            expires=expires,
            path=opts.path,
            domain=opts.domain,
            secure=opts.secure,
            httponly=opts.httponly,
            samesite=opts.samesite,
        )


class CookieStore(_SignedCookieStore):
    """All session values live in the signed cookie."""

    def _load(self, session: Session, claims: dict) -> None:
        payload = claims.get("v")
        if not isinstance(payload, str):
            logger.warning("Rejected session cookie %r: missing payload", session.name)
            return
        try:
            session.values = decode_values(payload)
        except SessionStoreError:
            logger.warning("Rejected session cookie %r: undecodable payload", session.name)
            return
        session.is_new = False

    def _dump(self, session: Session) -> dict:
        return {"v": encode_values(session.values)}


class MemoryStore(_SignedCookieStore):
    """Session values live in this process; the cookie carries a signed id.

    Each record keeps the instant it stops being useful: the session's
    SessionKey.EXPIRY when it has one, otherwise now + the cookie Max-Age.
    A record presented after that instant is dropped on load, and every save
    prunes all records that are past it. clock must return the same notion of
    "now" as the handler's clock.
    """

    def __init__(
        self,
        secret_key: str,
        options: CookieOptions | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(secret_key, options)
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._records: dict[str, _Record] = {}

    def active_sessions(self) -> int:
        """Number of server-side session records, expired or not."""
        with self._lock:
            return len(self._records)

    def prune(self) -> int:
        """Drop every record past its deadline. Returns the number dropped."""
        now = self._now()
        with self._lock:
            stale = [sid for sid, record in self._records.items() if record.deadline <= now]
            for sid in stale:
                del self._records[sid]
        if stale:
            logger.debug("Pruned %d expired session records", len(stale))
        return len(stale)

    def regenerate(self, session: Session) -> None:
        """Forget the session's current id; the next save mints a new one."""
        if session.id is None:
            return
        with self._lock:
            self._records.pop(session.id, None)
        session.id = None

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _deadline(self, session: Session) -> datetime:
        expiry = session.values.get(SessionKey.EXPIRY)
        if isinstance(expiry, datetime):
            return as_utc(expiry)
        max_age = session.options.max_age if session.options.max_age > 0 else _FALLBACK_MAX_AGE
        return self._now() + timedelta(seconds=max_age)

    def _load(self, session: Session, claims: dict) -> None:
        sid = claims.get("sid")
        if not isinstance(sid, str):
            return
        now = self._now()
        with self._lock:
            record = self._records.get(sid)
            if record is not None and record.deadline <= now:
                del self._records[sid]
                record = None
        if record is None:
            # Logged out, expired, or issued by another process.
            logger.debug("Session cookie %r references unknown id", session.name)
            return
        session.values = decode_values(record.payload)
        session.id = sid
        session.is_new = False

    def _dump(self, session: Session) -> dict:
        if session.id is None:
            session.id = secrets.token_urlsafe(32)
        if session.options.max_age < 0:
            with self._lock:
                self._records.pop(session.id, None)
        else:
            record = _Record(payload=encode_values(session.values), deadline=self._deadline(session))
            with self._lock:
                self._records[session.id] = record
        self.prune()
        return {"sid": session.id}
