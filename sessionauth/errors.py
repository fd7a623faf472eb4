"""
sessionauth/errors.py -- Error taxonomy for the session auth handler.

Every failure the handler can surface is an AuthError subclass tagged with an
ErrorKind and the HTTP status it maps to. Callers classify errors by kind:

    except AuthError as exc:
        if exc.kind is ErrorKind.BAD_LOGIN: ...

rather than comparing against a shared instance, so classification survives
wrapping (`raise VerifierError(...) from exc`) and re-raising across layers.

Layer rule: no imports from api/ or core/. Pure stdlib.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    BAD_METHOD = "bad_method"
    BODY_PARSE = "body_parse"
    BAD_LOGIN = "bad_login"
    NOT_AUTHORIZED = "not_authorized"
    STORE = "store"
    VERIFIER = "verifier"
    CONFIG = "config"


class AuthError(Exception):
    """Base class for all session auth failures.

    Subclasses set `kind`, `status_code` and `default_message`. The message
    is what the default error handler writes to the response body, so it must
    never carry secrets or internal details.
    """

    kind: ErrorKind
    status_code: int = 500
    default_message: str = "Internal Error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class BadMethodError(AuthError):
    kind = ErrorKind.BAD_METHOD
    status_code = 400
    default_message = "method should be POST"


class BodyParseError(AuthError):
    kind = ErrorKind.BODY_PARSE
    status_code = 500
    default_message = "could not parse request body"


class BadLoginError(AuthError):
    """Raised by verifiers for wrong credentials, and for empty form fields."""

    kind = ErrorKind.BAD_LOGIN
    status_code = 400
    default_message = "Bad Login"


class NotAuthorizedError(AuthError):
    """No session, or a session that is incomplete, malformed or expired."""

    kind = ErrorKind.NOT_AUTHORIZED
    status_code = 401
    default_message = "Not Authorized"


class SessionStoreError(AuthError):
    kind = ErrorKind.STORE
    status_code = 500
    default_message = "session store failure"


class VerifierError(AuthError):
    """Any verifier failure other than BadLoginError."""

    kind = ErrorKind.VERIFIER
    status_code = 500
    default_message = "credential check failed"


class ConfigError(AuthError):
    """Invalid handler option or incomplete handler configuration."""

    kind = ErrorKind.CONFIG
    status_code = 500
    default_message = "invalid auth handler configuration"


def is_kind(exc: BaseException, kind: ErrorKind) -> bool:
    """Return True if exc is an AuthError of the given kind."""
    return isinstance(exc, AuthError) and exc.kind is kind
