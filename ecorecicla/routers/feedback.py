"""
Feedback Endpoint for EcoRecicla
POST /api/feedback  - leave a message (and optional 1-5 rating)
"""

import asyncio
import logging

from fastapi import APIRouter, Request

from ecorecicla.api.schemas import FeedbackIn, FeedbackOut
from ecorecicla.auth import require_user
from ecorecicla.database import Feedback, ensure_profile, get_db, insert_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


@router.post("", response_model=FeedbackOut, status_code=201)
async def submit_feedback(request: Request, body: FeedbackIn):
    ctx = require_user(request)

    def _sync():
        db = get_db()
        try:
            ensure_profile(db, ctx.user_id, ctx.email or "", ctx.name or "")
            row = insert_row(db, Feedback, {
                "user_id": ctx.user_id,
                "message": body.message,
                "rating": body.rating,
            })
            return FeedbackOut(id=row.id, created_at=row.created_at)
        finally:
            db.close()

    out = await asyncio.to_thread(_sync)
    logger.info("Feedback received from %s (rating=%s)", ctx.user_id, body.rating)
    return out
