"""
Admin Endpoints for EcoRecicla (``admin`` role required)

GET    /api/admin/stats                          - platform head counts
GET    /api/admin/users                          - profiles with roles
GET    /api/admin/collection-points              - all points
POST   /api/admin/collection-points              - create
PUT    /api/admin/collection-points/{id}         - update
DELETE /api/admin/collection-points/{id}         - delete
POST   /api/admin/collection-points/{id}/toggle  - flip ``active``
(same five routes for /partners and /coupons)
"""

import asyncio
import logging
from typing import Callable, List

from fastapi import APIRouter, HTTPException, Request

from ecorecicla.api.converters import to_coupon_out, to_partner_out, to_point_out
from ecorecicla.api.schemas import (
    AdminStats,
    AdminUser,
    CollectionPointIn,
    CollectionPointOut,
    CouponIn,
    CouponOut,
    PartnerIn,
    PartnerOut,
)
from ecorecicla.auth import require_admin
from ecorecicla.database import (
    CollectionPoint,
    Coupon,
    Partner,
    RowInUse,
    delete_row,
    find_collection_points,
    find_coupons_with_partner,
    find_partners,
    find_profiles_with_roles,
    get_db,
    get_partner,
    insert_row,
    platform_stats,
    toggle_active,
    update_row,
    utcnow,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


async def _in_session(fn: Callable):
    """Run ``fn(db)`` in a worker thread with a short-lived session."""
    def _sync():
        db = get_db()
        try:
            return fn(db)
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} não encontrado")


async def _delete(model, row_id: str, what: str) -> dict:
    try:
        deleted = await _in_session(lambda db: delete_row(db, model, row_id))
    except RowInUse:
        raise HTTPException(
            status_code=409,
            detail=f"{what} possui registros vinculados e não pode ser excluído",
        )
    if not deleted:
        raise _not_found(what)
    logger.info("Admin deleted %s %s", model.__tablename__, row_id)
    return {"status": "deleted", "id": row_id}


def _coupon_out(db, row) -> CouponOut:
    partner = get_partner(db, row.partner_id)
    return to_coupon_out(row, partner.name if partner else None, utcnow())


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------

@router.get("/stats", response_model=AdminStats)
async def stats(request: Request):
    require_admin(request)
    return AdminStats(**await _in_session(platform_stats))


@router.get("/users", response_model=List[AdminUser])
async def users(request: Request):
    require_admin(request)

    def _fn(db):
        return [
            AdminUser(
                id=p.id,
                name=p.name,
                email=p.email,
                points_balance=p.points_balance,
                roles=roles,
                created_at=p.created_at,
            )
            for p, roles in find_profiles_with_roles(db)
        ]

    return await _in_session(_fn)


# ---------------------------------------------------------------------------
# Collection points
# ---------------------------------------------------------------------------

@router.get("/collection-points", response_model=List[CollectionPointOut])
async def admin_list_points(request: Request):
    require_admin(request)
    return await _in_session(
        lambda db: [to_point_out(r) for r in find_collection_points(db, active_only=False)]
    )


@router.post("/collection-points", response_model=CollectionPointOut, status_code=201)
async def admin_create_point(request: Request, body: CollectionPointIn):
    ctx = require_admin(request)
    values = {**body.model_dump(), "created_by": ctx.user_id}
    row = await _in_session(lambda db: insert_row(db, CollectionPoint, values))
    logger.info("Admin %s created collection point %s", ctx.user_id, row.id)
    return to_point_out(row)


@router.put("/collection-points/{point_id}", response_model=CollectionPointOut)
async def admin_update_point(request: Request, point_id: str, body: CollectionPointIn):
    require_admin(request)
    row = await _in_session(lambda db: update_row(db, CollectionPoint, point_id, body.model_dump()))
    if row is None:
        raise _not_found("Ponto de coleta")
    logger.info("Admin updated collection point %s", point_id)
    return to_point_out(row)


@router.delete("/collection-points/{point_id}")
async def admin_delete_point(request: Request, point_id: str):
    require_admin(request)
    return await _delete(CollectionPoint, point_id, "Ponto de coleta")


@router.post("/collection-points/{point_id}/toggle", response_model=CollectionPointOut)
async def admin_toggle_point(request: Request, point_id: str):
    require_admin(request)
    row = await _in_session(lambda db: toggle_active(db, CollectionPoint, point_id))
    if row is None:
        raise _not_found("Ponto de coleta")
    logger.info("Admin toggled collection point %s (active=%s)", point_id, row.active)
    return to_point_out(row)


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------

@router.get("/partners", response_model=List[PartnerOut])
async def admin_list_partners(request: Request):
    require_admin(request)
    return await _in_session(
        lambda db: [to_partner_out(p) for p in find_partners(db, active_only=False)]
    )


@router.post("/partners", response_model=PartnerOut, status_code=201)
async def admin_create_partner(request: Request, body: PartnerIn):
    ctx = require_admin(request)
    row = await _in_session(lambda db: insert_row(db, Partner, body.to_row()))
    logger.info("Admin %s created partner %s", ctx.user_id, row.id)
    return to_partner_out(row)


@router.put("/partners/{partner_id}", response_model=PartnerOut)
async def admin_update_partner(request: Request, partner_id: str, body: PartnerIn):
    require_admin(request)
    row = await _in_session(lambda db: update_row(db, Partner, partner_id, body.to_row()))
    if row is None:
        raise _not_found("Parceiro")
    logger.info("Admin updated partner %s", partner_id)
    return to_partner_out(row)


@router.delete("/partners/{partner_id}")
async def admin_delete_partner(request: Request, partner_id: str):
    require_admin(request)
    return await _delete(Partner, partner_id, "Parceiro")


@router.post("/partners/{partner_id}/toggle", response_model=PartnerOut)
async def admin_toggle_partner(request: Request, partner_id: str):
    require_admin(request)
    row = await _in_session(lambda db: toggle_active(db, Partner, partner_id))
    if row is None:
        raise _not_found("Parceiro")
    logger.info("Admin toggled partner %s (active=%s)", partner_id, row.active)
    return to_partner_out(row)


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------

@router.get("/coupons", response_model=List[CouponOut])
async def admin_list_coupons(request: Request):
    require_admin(request)
    now = utcnow()
    return await _in_session(
        lambda db: [to_coupon_out(c, name, now) for c, name in find_coupons_with_partner(db)]
    )


def _save_coupon(db, values: dict, coupon_id: str = None):
    """Insert or update a coupon; returns "no_partner", None (missing) or the row."""
    if get_partner(db, values["partner_id"]) is None:
        return "no_partner"
    if coupon_id is None:
        row = insert_row(db, Coupon, values)
    else:
        row = update_row(db, Coupon, coupon_id, values)
    if row is None:
        return None
    return _coupon_out(db, row)


@router.post("/coupons", response_model=CouponOut, status_code=201)
async def admin_create_coupon(request: Request, body: CouponIn):
    ctx = require_admin(request)
    out = await _in_session(lambda db: _save_coupon(db, body.to_row()))
    if out == "no_partner":
        raise _not_found("Parceiro")
    logger.info("Admin %s created coupon %s", ctx.user_id, out.id)
    return out


@router.put("/coupons/{coupon_id}", response_model=CouponOut)
async def admin_update_coupon(request: Request, coupon_id: str, body: CouponIn):
    require_admin(request)
    out = await _in_session(lambda db: _save_coupon(db, body.to_row(), coupon_id))
    if out == "no_partner":
        raise _not_found("Parceiro")
    if out is None:
        raise _not_found("Cupom")
    logger.info("Admin updated coupon %s", coupon_id)
    return out


@router.delete("/coupons/{coupon_id}")
async def admin_delete_coupon(request: Request, coupon_id: str):
    require_admin(request)
    return await _delete(Coupon, coupon_id, "Cupom")


@router.post("/coupons/{coupon_id}/toggle", response_model=CouponOut)
async def admin_toggle_coupon(request: Request, coupon_id: str):
    require_admin(request)

    def _fn(db):
        row = toggle_active(db, Coupon, coupon_id)
        return _coupon_out(db, row) if row is not None else None

    out = await _in_session(_fn)
    if out is None:
        raise _not_found("Cupom")
    logger.info("Admin toggled coupon %s (active=%s)", coupon_id, out.active)
    return out
