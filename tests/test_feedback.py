from __future__ import annotations

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from ecorecicla.api.schemas import FeedbackIn
from ecorecicla.database import Feedback
from ecorecicla.routers import feedback


@pytest.mark.asyncio
async def test_submit_feedback(db, seed, make_request):
    out = await feedback.submit_feedback(
        make_request(ctx=seed.citizen_ctx()), FeedbackIn(message="  Ótimo app!  ", rating=5),
    )
    row = db.get(Feedback, out.id)
    assert row.message == "Ótimo app!"
    assert row.rating == 5
    assert row.user_id == "u-citizen"


@pytest.mark.asyncio
async def test_feedback_requires_login(make_request):
    with pytest.raises(HTTPException) as exc:
        await feedback.submit_feedback(make_request(), FeedbackIn(message="oi"))
    assert exc.value.status_code == 401


@pytest.mark.parametrize("kwargs", [
    {"message": "   "},
    {"message": "ok", "rating": 6},
    {"message": "x" * 2001},
])
def test_invalid_feedback_rejected(kwargs):
    with pytest.raises(ValidationError):
        FeedbackIn(**kwargs)
