"""
EcoRecicla — Centralised router registration.

This module is the single place where every APIRouter is mounted onto the
FastAPI application.  Import and call ``register_routes(app)`` once in
``ecorecicla.app``.

Endpoints defined here (beyond the feature routers):

  GET  /api/health   — database, auth service and runtime counters
"""

from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter, FastAPI

from ecorecicla import config
from ecorecicla.api.schemas import HealthResponse
from ecorecicla.auth_provider import is_configured
from ecorecicla.metrics import metrics_snapshot

logger = logging.getLogger(__name__)

# Module-level start time for uptime reporting
_START_TIME: float = time.time()


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------

system_router = APIRouter(prefix="/api", tags=["system"])


def _check_db() -> str:
    from ecorecicla.database import get_db, ping

    db = get_db()
    try:
        ping(db)
        return "ok"
    finally:
        db.close()


@system_router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check():
    try:
        db_status = await asyncio.to_thread(_check_db)
    except Exception as exc:
        logger.warning("Health check: database unreachable: %s", exc)
        db_status = f"error: {exc}"

    snap = metrics_snapshot()
    return HealthResponse(
        status="ok" if db_status == "ok" else "degraded",
        version=config.APP_VERSION,
        db=db_status,
        auth_configured=is_configured(),
        uptime_seconds=round(time.time() - _START_TIME, 1),
        requests_total=snap.get("requests_total", 0),
        errors_last_hour=snap.get("errors_last_hour", 0),
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def register_routes(app: FastAPI) -> None:
    """Mount all routers onto ``app``.

    Call this once from ``ecorecicla.app`` after creating the FastAPI instance.
    """
    from ecorecicla import auth
    from ecorecicla.routers import (
        admin,
        collection_points,
        coupons,
        dashboard,
        deliveries,
        feedback,
    )

    app.include_router(auth.router)
    app.include_router(dashboard.router)
    app.include_router(deliveries.router)
    app.include_router(collection_points.router)
    app.include_router(coupons.router)
    app.include_router(feedback.router)
    app.include_router(admin.router)
    app.include_router(system_router)

    logger.info("Routes registered: %d total endpoints", len(app.routes))
