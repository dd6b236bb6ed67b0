"""
Delivery Endpoints for EcoRecicla

GET  /api/deliveries        - the caller's delivery history, newest first
GET  /api/deliveries/quote  - live points preview for the registration form
POST /api/deliveries        - register a delivery and credit its points
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from ecorecicla.api.converters import to_delivery_out
from ecorecicla.api.schemas import DeliveryCreated, DeliveryIn, DeliveryOut, PointsQuote
from ecorecicla.auth import require_user
from ecorecicla.core.constants import POINTS_PER_KG
from ecorecicla.core.utils import points_for_delivery, quote_points
from ecorecicla.database import (
    ensure_profile,
    find_user_deliveries,
    get_collection_point,
    get_db,
    record_delivery,
)
from ecorecicla.domain.enums import MaterialType
from ecorecicla.metrics import record_delivery as count_delivery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


@router.get("", response_model=List[DeliveryOut])
async def list_deliveries(request: Request):
    """Return the caller's deliveries with the collection point name."""
    ctx = require_user(request)

    def _sync():
        db = get_db()
        try:
            return [to_delivery_out(d, name) for d, name in find_user_deliveries(db, ctx.user_id)]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.get("/quote", response_model=PointsQuote)
async def quote(
    material_type: Optional[MaterialType] = Query(None),
    weight_kg: Optional[float] = Query(None),
):
    """Points the form would award; ``points`` is null until both inputs are usable."""
    material = material_type.value if material_type else None
    return PointsQuote(
        material_type=material_type,
        weight_kg=weight_kg,
        points_per_kg=POINTS_PER_KG.get(material) if material else None,
        points=quote_points(material, weight_kg),
    )


@router.post("", response_model=DeliveryCreated, status_code=201)
async def register_delivery(request: Request, body: DeliveryIn):
    """Insert the delivery and add its points to the caller's balance."""
    ctx = require_user(request)
    point_id = str(body.collection_point_id)
    points = points_for_delivery(body.material_type.value, body.weight_kg)

    def _sync():
        db = get_db()
        try:
            point = get_collection_point(db, point_id)
            if point is None or not point.active:
                return None
            ensure_profile(db, ctx.user_id, ctx.email or "", ctx.name or "")
            delivery, balance = record_delivery(
                db,
                user_id=ctx.user_id,
                collection_point_id=point_id,
                material_type=body.material_type.value,
                weight_kg=body.weight_kg,
                points_earned=points,
            )
            return to_delivery_out(delivery, point.name), balance
        finally:
            db.close()

    result = await asyncio.to_thread(_sync)
    if result is None:
        raise HTTPException(status_code=404, detail="Ponto de coleta não encontrado")

    delivery, balance = result
    count_delivery()
    logger.info(
        "Delivery registered: user=%s point=%s material=%s kg=%.2f points=%d",
        ctx.user_id, point_id, body.material_type.value, body.weight_kg, points,
    )
    return DeliveryCreated(
        delivery=delivery,
        points_balance=balance,
        message=f"Você ganhou {points} pontos!",
    )
