"""
api/main.py -- FastAPI application factory for a session-auth host.

Wires the pieces an integrator would otherwise assemble by hand:
  - logging configuration
  - explicit session-type registration (once per process)
  - an AuthHandler built from core.config.Settings
  - routes: POST /login, GET|POST /logout, GET /me (gated), GET /api/v1/me
    (dependency-protected), GET /api/v1/health (public)

The verifier is always supplied by the caller; credential storage is not this
project's concern.

    app = create_app(MyVerifier())
    uvicorn.run(app)

Middleware stack (outermost to innermost):
  1. log_requests -- one log line per request with status and latency
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from core.config import Settings, get_settings
from sessionauth.dependencies import require_identity
from sessionauth.handler import AuthHandler, new_handler
from sessionauth.keys import register_session_types
from sessionauth.options import Option, options_from_settings
from sessionauth.session import SessionStore, Verifier

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


async def me(request: Request) -> JSONResponse:
    """Gated endpoint: re-reads the identity the gate already validated."""
    handler: AuthHandler = request.app.state.auth_handler
    return JSONResponse({"identity": handler.authenticate_request(request)})


async def api_me(identity: Any = Depends(require_identity)) -> dict:
    """Dependency-protected variant of /me for API clients."""
    return {"identity": identity}


async def health() -> dict:
    """Liveness probe. Public and unauthenticated."""
    return {"status": "healthy", "version": VERSION}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(
    verifier: Verifier,
    *,
    settings: Settings | None = None,
    store: SessionStore | None = None,
    extra_options: tuple[Option, ...] = (),
) -> FastAPI:
    """Build the FastAPI app around an AuthHandler for verifier.

    settings defaults to get_settings(). store overrides the backend chosen by
    SESSION_BACKEND. extra_options run after the settings-derived options, so
    they win on conflict (e.g. a custom error handler or clock in tests).
    """
    settings = settings or get_settings()

    if register_session_types():
        logger.info("Session types registered at app creation")

    options = [*options_from_settings(settings, store=store), *extra_options]
    handler = new_handler(verifier, *options)
    logger.info(
        "Auth handler ready (session=%s, lifetime=%ss, backend=%s)",
        handler.session_name,
        int(handler.lifetime.total_seconds()),
        type(handler.store).__name__,
    )

    app = FastAPI(title="session-auth", version=VERSION)
    app.state.auth_handler = handler

    # -----------------------------------------------------------------------
    # Request logging middleware
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # -----------------------------------------------------------------------
    # Routes
    #
    # /login accepts GET too so the handler, not the router, answers a wrong
    # method with 400 rather than 405.
    # -----------------------------------------------------------------------

    app.add_route("/login", handler.authorize, methods=["GET", "POST"])
    app.add_route("/logout", handler.logout, methods=["GET", "POST"])
    app.add_route("/me", handler.authenticate(me), methods=["GET"])
    app.add_api_route("/api/v1/me", api_me, methods=["GET"], tags=["Auth"])
    app.add_api_route("/api/v1/health", health, methods=["GET"], tags=["Health"])

    return app
