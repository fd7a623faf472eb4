"""
sessionauth/ -- Session-cookie authentication for Starlette and FastAPI apps.

Start-up sequence for a host application:

    register_session_types()
    handler = new_handler(verifier, with_store(CookieStore(secret_key)))
    app.add_route("/login", handler.authorize, methods=["GET", "POST"])
    app.add_route("/logout", handler.logout)
    app.add_route("/inbox", handler.authenticate(inbox))

Layer rule: sessionauth/ imports from core/ only for the time codec. It does
NOT import from api/; api/ imports from sessionauth/, not the other way around.
"""

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
from sessionauth.handler import AuthHandler, default_error_handler, new_handler
from sessionauth.keys import SessionKey, register_session_type, register_session_types
from sessionauth.options import (
    build_store,
    options_from_settings,
    with_clock,
    with_error_handler,
    with_landing_redirect,
    with_lifetime,
    with_logout_redirect,
    with_not_authorized_handler,
    with_session_name,
    with_store,
)
from sessionauth.session import CookieOptions, Session, SessionStore, Verifier
from sessionauth.stores import CookieStore, MemoryStore

__all__ = [
    "AuthError",
    "AuthHandler",
    "BadLoginError",
    "BadMethodError",
    "BodyParseError",
    "ConfigError",
    "CookieOptions",
    "CookieStore",
    "ErrorKind",
    "MemoryStore",
    "NotAuthorizedError",
    "Session",
    "SessionKey",
    "SessionStore",
    "SessionStoreError",
    "Verifier",
    "VerifierError",
    "build_store",
    "default_error_handler",
    "is_kind",
    "new_handler",
    "options_from_settings",
    "register_session_type",
    "register_session_types",
    "with_clock",
    "with_error_handler",
    "with_landing_redirect",
    "with_lifetime",
    "with_logout_redirect",
    "with_not_authorized_handler",
    "with_session_name",
    "with_store",
]
