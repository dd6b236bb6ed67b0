"""
Citizen dashboard: balance, monthly totals, recent activity and the
cheapest coupons currently on offer.

Routes:
    GET /api/dashboard
"""

from __future__ import annotations

import asyncio
from typing import List

from fastapi import APIRouter, Request

from ecorecicla import config
from ecorecicla.api.converters import to_coupon_out
from ecorecicla.api.schemas import ActivityItem, DashboardResponse
from ecorecicla.auth import require_user
from ecorecicla.core.constants import FEATURED_COUPONS_LIMIT, RECENT_ACTIVITY_LIMIT
from ecorecicla.core.utils import format_points, local_month_start_utc
from ecorecicla.database import (
    delivery_totals,
    find_redeemable_coupons,
    find_user_deliveries,
    find_user_redemptions,
    get_db,
    get_profile,
    partner_names,
    utcnow,
)
from ecorecicla.domain.enums import ActivityKind, MaterialType

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _delivery_activity(delivery, point_name) -> ActivityItem:
    label = MaterialType(delivery.material_type).label
    where = f" no {point_name}" if point_name else ""
    return ActivityItem(
        kind=ActivityKind.DELIVERY,
        title=f"{label} reciclado",
        detail=f"{delivery.weight_kg:g} kg{where}",
        points=delivery.points_earned,
        points_label=format_points(delivery.points_earned),
        occurred_at=delivery.created_at,
    )


def _redemption_activity(redemption, title, partner, cost) -> ActivityItem:
    spent = -(cost or 0)
    detail = " - ".join(p for p in (title, partner) if p)
    return ActivityItem(
        kind=ActivityKind.REDEMPTION,
        title="Cupom resgatado",
        detail=detail,
        points=spent,
        points_label=format_points(spent),
        occurred_at=redemption.redeemed_at,
    )


def build_recent_activity(deliveries, redemptions, limit: int = RECENT_ACTIVITY_LIMIT) -> List[ActivityItem]:
    """Merge both feeds, newest first, keeping at most ``limit`` entries."""
    items = [_delivery_activity(d, name) for d, name in deliveries[:limit]]
    items += [_redemption_activity(*row) for row in redemptions[:limit]]
    items.sort(key=lambda a: a.occurred_at, reverse=True)
    return items[:limit]


@router.get("", response_model=DashboardResponse)
async def get_dashboard(request: Request):
    ctx = require_user(request)
    now = utcnow()

    def _sync():
        db = get_db()
        try:
            profile = get_profile(db, ctx.user_id)
            lifetime = delivery_totals(db, ctx.user_id)
            since = local_month_start_utc(now, config.LOCAL_TIMEZONE)
            this_month = delivery_totals(db, ctx.user_id, since=since)
            activity = build_recent_activity(
                find_user_deliveries(db, ctx.user_id, limit=RECENT_ACTIVITY_LIMIT),
                find_user_redemptions(db, ctx.user_id, limit=RECENT_ACTIVITY_LIMIT),
            )
            coupons = find_redeemable_coupons(db, FEATURED_COUPONS_LIMIT, now=now)
            names = partner_names(db, [c.partner_id for c in coupons])
            return DashboardResponse(
                name=profile.name if profile else ctx.name,
                points_balance=profile.points_balance if profile else 0,
                kg_this_month=round(this_month["weight_kg"], 2),
                total_points_earned=lifetime["points"],
                deliveries_count=lifetime["count"],
                recent_activity=activity,
                featured_coupons=[to_coupon_out(c, names.get(c.partner_id), now) for c in coupons],
            )
        finally:
            db.close()

    return await asyncio.to_thread(_sync)
