"""
EcoRecicla - FastAPI Application
Main entry point for the backend server.

Run with:
    uvicorn ecorecicla.app:app --reload --host 0.0.0.0 --port 8001
"""

import asyncio
import json
import logging
import os
import time
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecorecicla import config
from ecorecicla.api.routes import register_routes
from ecorecicla.auth import get_token_payload
from ecorecicla.core.logging import configure_logging
from ecorecicla.database import get_db, get_user_roles, init_db
from ecorecicla.domain.models import UserContext
from ecorecicla.metrics import record_error, record_request

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
configure_logging()
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan (startup / shutdown)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Runs once on startup, yields for the lifetime of the app."""
    logger.info("Initialising database...")
    init_db()
    logger.info("Database ready.")

    yield  # Application is running


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="EcoRecicla",
    version=config.APP_VERSION,
    description="Recycling rewards: register deliveries, earn points, redeem partner coupons",
    lifespan=lifespan,
)

# allow_credentials=True lets the browser send the session cookie and the
# Authorization header from the configured frontend origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# ---------------------------------------------------------------------------
# Global exception handler -- unhandled errors become structured JSON
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method, request.url.path, exc, traceback.format_exc(),
    )
    record_error()
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "path": request.url.path,
        },
    )


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

async def request_logging_middleware(request: Request, call_next):
    """Emit one ``request_log {json}`` line per request and tag the response."""
    record_request()
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    started = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    if response.status_code >= 500:
        record_error()

    ctx = getattr(request.state, "user_ctx", None)
    payload = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "user_id": ctx.user_id if ctx else None,
    }
    logger.info("request_log %s", json.dumps(payload, separators=(",", ":")))
    return response


def _lookup_roles(user_id: str):
    db = get_db()
    try:
        return get_user_roles(db, user_id)
    finally:
        db.close()


async def user_context_middleware(request: Request, call_next):
    """
    Attach a ``UserContext`` to ``request.state.user_ctx``.

    Downstream route handlers read it via ``ecorecicla.auth.require_user``.
    Falls back to ``UserContext.anonymous()`` when there is no valid
    session; roles are always read from the database, never the token.
    """
    ctx = UserContext.anonymous()
    payload = get_token_payload(request)
    if payload and payload.get("sub"):
        try:
            roles = await asyncio.to_thread(_lookup_roles, payload["sub"])
        except Exception as exc:
            logger.warning("user_context_middleware: role lookup failed: %s", exc)
            roles = []
        ctx = UserContext.from_token(payload, roles)

    request.state.user_ctx = ctx
    return await call_next(request)


# Starlette runs the last-added middleware first, so the request log sees
# the resolved user context.
app.middleware("http")(user_context_middleware)
app.middleware("http")(request_logging_middleware)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

register_routes(app)


# ---------------------------------------------------------------------------
# Development entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ecorecicla.app:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=True,
        reload_dirs=[_PROJECT_ROOT],
    )
