"""
ORM row → response schema conversion shared by several routers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ecorecicla.api.schemas import (
    CollectionPointOut,
    CouponOut,
    DeliveryOut,
    PartnerOut,
    RedemptionOut,
)
from ecorecicla.core.utils import directions_url


def to_point_out(row, distance_km: Optional[float] = None) -> CollectionPointOut:
    return CollectionPointOut(
        id=row.id,
        name=row.name,
        address=row.address,
        latitude=row.latitude,
        longitude=row.longitude,
        opening_hours=row.opening_hours,
        active=bool(row.active),
        directions_url=directions_url(row.latitude, row.longitude),
        distance_km=round(distance_km, 2) if distance_km is not None else None,
    )


def to_partner_out(row) -> PartnerOut:
    return PartnerOut(
        id=row.id,
        name=row.name,
        description=row.description,
        logo_url=row.logo_url,
        contact_email=row.contact_email,
        active=bool(row.active),
        created_at=row.created_at,
    )


def to_coupon_out(row, partner_name: Optional[str], now: datetime) -> CouponOut:
    return CouponOut(
        id=row.id,
        partner_id=row.partner_id,
        partner_name=partner_name,
        title=row.title,
        description=row.description,
        points_required=row.points_required,
        quantity_available=row.quantity_available,
        expiration_date=row.expiration_date,
        active=bool(row.active),
        expired=row.expiration_date < now,
        sold_out=(row.quantity_available or 0) <= 0,
    )


def to_delivery_out(row, point_name: Optional[str]) -> DeliveryOut:
    return DeliveryOut(
        id=row.id,
        collection_point_id=row.collection_point_id,
        collection_point_name=point_name,
        material_type=row.material_type,
        weight_kg=round(float(row.weight_kg), 2),
        points_earned=row.points_earned,
        created_at=row.created_at,
    )


def to_redemption_out(row, coupon_title=None, partner_name=None, points_spent=None) -> RedemptionOut:
    return RedemptionOut(
        id=row.id,
        coupon_id=row.coupon_id,
        coupon_title=coupon_title,
        partner_name=partner_name,
        points_spent=points_spent,
        redeemed_at=row.redeemed_at,
    )
