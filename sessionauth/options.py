"""
sessionauth/options.py -- Functional options for new_handler().

Each option is a callable that validates its argument and writes it into a
mutable _Builder. new_handler() applies options in order, then fills in
defaults, then freezes the result into an AuthHandler. An option that raises
ConfigError aborts construction; no half-built handler escapes.

    handler = new_handler(
        verifier,
        with_store(CookieStore(secret)),
        with_lifetime(timedelta(minutes=30)),
        with_landing_redirect("/inbox"),
    )

options_from_settings() derives the same list from core.config.Settings so the
host application configures the handler from environment variables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Union

from sessionauth.errors import ConfigError
from sessionauth.session import CookieOptions, SessionStore
from sessionauth.stores import CookieStore, MemoryStore

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

    from core.config import Settings

ErrorHandler = Callable[["Request", Exception, int], Union["Response", Awaitable["Response"]]]
NotAuthorizedHandler = Callable[["Request"], Union["Response", Awaitable["Response"]]]
Clock = Callable[[], datetime]

# RFC 6265 cookie-name token: printable ASCII minus separators.
_COOKIE_NAME_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


@dataclass
class _Builder:
    """Mutable configuration collected from options before defaults apply."""

    store: SessionStore | None = None
    lifetime: timedelta | None = None
    redir_landing: str = ""
    redir_logout: str = ""
    session_name: str = ""
    error_handler: ErrorHandler | None = None
    not_authorized_handler: NotAuthorizedHandler | None = None
    clock: Clock | None = None


Option = Callable[[_Builder], None]


def _check_local_path(path: str, what: str) -> None:
    """Reject redirect targets that could leave the site."""
    if not isinstance(path, str) or not path.startswith("/") or path.startswith("//"):
        raise ConfigError(f"{what} must be a local path starting with '/'")
    if "\r" in path or "\n" in path:
        raise ConfigError(f"{what} must not contain line breaks")


def with_store(store: SessionStore) -> Option:
    def apply(b: _Builder) -> None:
        if store is None:
            raise ConfigError("session store must not be None")
        b.store = store

    return apply


def with_lifetime(lifetime: timedelta) -> Option:
    """Fixed session lifetime measured from login. Must be positive."""

    def apply(b: _Builder) -> None:
        if not isinstance(lifetime, timedelta) or lifetime <= timedelta(0):
            raise ConfigError("session lifetime must be a positive timedelta")
        b.lifetime = lifetime

    return apply


def with_landing_redirect(path: str) -> Option:
    def apply(b: _Builder) -> None:
        _check_local_path(path, "landing redirect")
        b.redir_landing = path

    return apply


def with_logout_redirect(path: str) -> Option:
    def apply(b: _Builder) -> None:
        _check_local_path(path, "logout redirect")
        b.redir_logout = path

    return apply


def with_session_name(name: str) -> Option:
    def apply(b: _Builder) -> None:
        if not isinstance(name, str) or not _COOKIE_NAME_RE.match(name):
            raise ConfigError(f"invalid session name: {name!r}")
        b.session_name = name

    return apply


def with_error_handler(handler: ErrorHandler) -> Option:
    def apply(b: _Builder) -> None:
        if handler is None or not callable(handler):
            raise ConfigError("error handler must be callable")
        b.error_handler = handler

    return apply


def with_not_authorized_handler(handler: NotAuthorizedHandler) -> Option:
    def apply(b: _Builder) -> None:
        if handler is None or not callable(handler):
            raise ConfigError("not-authorized handler must be callable")
        b.not_authorized_handler = handler

    return apply


def with_clock(clock: Clock) -> Option:
    """Source of "now" for expiry checks. Naive datetimes are read as UTC."""

    def apply(b: _Builder) -> None:
        if clock is None or not callable(clock):
            raise ConfigError("clock must be callable")
        b.clock = clock

    return apply


def build_store(settings: Settings) -> SessionStore:
    """Construct the session store selected by SESSION_BACKEND."""
    options = CookieOptions(secure=settings.secure_cookies)
    if settings.session_backend == "memory":
        return MemoryStore(settings.secret_key, options)
    return CookieStore(settings.secret_key, options)


def options_from_settings(settings: Settings, store: SessionStore | None = None) -> list[Option]:
    """Return the option list equivalent to settings.

    If store is None a store is built from settings.session_backend.
    """
    options: list[Option] = [
        with_store(store if store is not None else build_store(settings)),
        with_session_name(settings.session_name),
        with_lifetime(timedelta(seconds=settings.session_lifetime_seconds)),
        with_landing_redirect(settings.landing_path),
    ]
    if settings.logout_path:
        options.append(with_logout_redirect(settings.logout_path))
    return options
