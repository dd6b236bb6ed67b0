"""
Coupon Endpoints for EcoRecicla

GET  /api/partners                   - active partners for the filter dropdown
GET  /api/coupons                    - paginated catalogue of active coupons
POST /api/coupons/{coupon_id}/redeem - spend points on one coupon
GET  /api/redemptions                - the caller's redemptions
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from ecorecicla import config
from ecorecicla.api.converters import to_coupon_out, to_redemption_out
from ecorecicla.api.schemas import CouponPage, PartnerOption, RedeemResponse, RedemptionOut
from ecorecicla.auth import require_user
from ecorecicla.core.utils import page_offset, showing_range, total_pages
from ecorecicla.database import (
    RedemptionRefused,
    find_coupons_page,
    find_partners,
    find_user_redemptions,
    get_db,
    partner_names,
    redeem_coupon,
    utcnow,
)
from ecorecicla.domain.enums import ValidityFilter
from ecorecicla.metrics import record_redemption

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coupons"])

_REFUSAL_STATUS = {
    RedemptionRefused.NOT_FOUND: 404,
    RedemptionRefused.EXPIRED: 409,
    RedemptionRefused.SOLD_OUT: 409,
    RedemptionRefused.INSUFFICIENT_POINTS: 409,
}


@router.get("/api/partners", response_model=List[PartnerOption])
async def list_partners():
    def _sync():
        db = get_db()
        try:
            return [PartnerOption(id=p.id, name=p.name) for p in find_partners(db, active_only=True)]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.get("/api/coupons", response_model=CouponPage)
async def list_coupons(
    partner_id: Optional[str] = Query(None),
    validity: ValidityFilter = Query(ValidityFilter.ALL),
    page: int = Query(1, ge=1),
):
    """Active coupons, cheapest first, filtered by partner and expiry."""
    page_size = config.COUPONS_PAGE_SIZE
    now = utcnow()

    def _sync():
        db = get_db()
        try:
            rows, total = find_coupons_page(
                db,
                partner_id=partner_id or None,
                validity=validity.value,
                offset=page_offset(page, page_size),
                limit=page_size,
                now=now,
            )
            names = partner_names(db, [r.partner_id for r in rows])
            return [to_coupon_out(r, names.get(r.partner_id), now) for r in rows], total
        finally:
            db.close()

    items, total = await asyncio.to_thread(_sync)
    first, last = showing_range(page, page_size, total)
    return CouponPage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
        showing_from=first,
        showing_to=last,
    )


@router.post("/api/coupons/{coupon_id}/redeem", response_model=RedeemResponse, status_code=201)
async def redeem(request: Request, coupon_id: str):
    """Exchange the caller's points for one unit of a coupon."""
    ctx = require_user(request)

    def _sync():
        db = get_db()
        try:
            redemption, balance, remaining = redeem_coupon(db, ctx.user_id, coupon_id)
            return redemption, balance, remaining
        finally:
            db.close()

    try:
        redemption, balance, remaining = await asyncio.to_thread(_sync)
    except RedemptionRefused as exc:
        raise HTTPException(status_code=_REFUSAL_STATUS.get(exc.reason, 409), detail=str(exc))

    record_redemption()
    logger.info("Coupon redeemed: user=%s coupon=%s balance=%d", ctx.user_id, coupon_id, balance)
    return RedeemResponse(
        redemption=to_redemption_out(redemption),
        points_balance=balance,
        quantity_available=remaining,
    )


@router.get("/api/redemptions", response_model=List[RedemptionOut])
async def list_redemptions(request: Request):
    ctx = require_user(request)

    def _sync():
        db = get_db()
        try:
            return [
                to_redemption_out(r, title, partner, cost)
                for r, title, partner, cost in find_user_redemptions(db, ctx.user_id)
            ]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)
