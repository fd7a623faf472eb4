"""
sessionauth/session.py -- Session model and the two pluggable capabilities.

Pattern: Data class + Protocol. Session and CookieOptions are plain data
containers; Verifier and SessionStore are structural interfaces the
integrator implements (or picks from sessionauth.stores). Test doubles satisfy
them directly without inheriting anything.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

_THIRTY_DAYS = 30 * 24 * 60 * 60


@dataclass
class CookieOptions:
    """Attributes written on the session cookie.

    max_age follows the usual store convention:
      > 0   -- Max-Age in seconds
      0     -- no Max-Age (browser-session cookie)
      < 0   -- expire immediately; stores also drop any server-side record
    """

    path: str = "/"
    domain: str | None = None
    max_age: int = _THIRTY_DAYS
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def copy(self) -> CookieOptions:
        return replace(self)


@dataclass
class Session:
    """Request-scoped view of a named session.

    is_new is True when no valid cookie was presented. values is mutated in
    place by the auth handler (and by application code, with its own keys) and
    written back by save().
    """

    name: str
    store: SessionStore
    values: dict[Any, Any] = field(default_factory=dict)
    is_new: bool = True
    options: CookieOptions = field(default_factory=CookieOptions)
    id: str | None = None

    def save(self, request: Request, response: Response) -> None:
        """Persist the session into response. Raises SessionStoreError."""
        self.store.save(request, response, self)


@runtime_checkable
class Verifier(Protocol):
    def check(self, user: str, password: str) -> Any:
        """Return an opaque identity for valid credentials.

        Raise sessionauth.errors.BadLoginError for wrong credentials. Any other
        exception is treated as an internal failure (HTTP 500).
        """
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Loads and saves named sessions.

    A store that keys server-side records by session id may also define
    regenerate(session): the handler calls it at login, before writing the
    identity, so the authenticated session never reuses a pre-login id.
    """

    def get(self, request: Request, name: str) -> Session:
        """Load the named session for request, or return a new one.

        Raise SessionStoreError only for backend failures. A missing or
        invalid cookie is not a failure; it yields a new session.
        """
        ...

    def save(self, request: Request, response: Response, session: Session) -> None:
        """Write session into response (and any backing storage)."""
        ...
