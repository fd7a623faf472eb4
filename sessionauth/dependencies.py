"""
sessionauth/dependencies.py -- FastAPI Depends() helpers for session auth.

The AuthHandler.authenticate wrapper gates plain Starlette endpoints. FastAPI
routes usually prefer dependency injection, so these helpers expose the same
check in that shape. Both read the handler from request.app.state.auth_handler,
which the host application sets at startup.

try_get_identity() is the soft variant (returns None when not authenticated).
require_identity() wraps it and raises HTTP 401 with the not-authorized text.

Layer rule: no imports from api/ or core/.
  sessionauth/dependencies.py may import from fastapi (HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request

from sessionauth.errors import NotAuthorizedError
from sessionauth.handler import AuthHandler


def _handler(request: Request) -> AuthHandler:
    return request.app.state.auth_handler


def try_get_identity(request: Request) -> Any | None:
    """Return the session identity, or None if the request is not authenticated.

    Session store failures propagate; only NotAuthorizedError is softened.
    """
    try:
        return _handler(request).authenticate_request(request)
    except NotAuthorizedError:
        return None


def require_identity(request: Request) -> Any:
    """Require an authenticated session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity=Depends(require_identity)): ...
    """
    try:
        return _handler(request).authenticate_request(request)
    except NotAuthorizedError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
