from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from ecorecicla.api.schemas import DeliveryIn
from ecorecicla.database import Profile
from ecorecicla.domain.enums import MaterialType
from ecorecicla.metrics import metrics_snapshot, reset_metrics_for_tests
from ecorecicla.routers import deliveries


def _body(point_id, material="plastico", weight=2.0) -> DeliveryIn:
    return DeliveryIn(collection_point_id=point_id, material_type=material, weight_kg=weight)


@pytest.mark.asyncio
async def test_register_delivery_credits_points(db, seed, make_request):
    reset_metrics_for_tests()
    seed.profile(db, "u-citizen", balance=5)
    point = seed.point(db)

    out = await deliveries.register_delivery(
        make_request("/api/deliveries", "POST", ctx=seed.citizen_ctx()), _body(point.id),
    )
    assert out.points_balance == 35
    assert out.delivery.points_earned == 30
    assert out.delivery.collection_point_name == "Ecoponto Centro"
    assert out.message == "Você ganhou 30 pontos!"
    assert metrics_snapshot()["deliveries_registered"] == 1

    db.expire_all()
    assert db.get(Profile, "u-citizen").points_balance == 35


@pytest.mark.asyncio
async def test_first_delivery_creates_missing_profile(db, seed, make_request):
    point = seed.point(db)
    out = await deliveries.register_delivery(
        make_request(ctx=seed.citizen_ctx()), _body(point.id, "metal", 0.5),
    )
    assert out.points_balance == 10
    assert db.get(Profile, "u-citizen") is not None


@pytest.mark.asyncio
async def test_inactive_or_unknown_point_is_404(db, seed, make_request):
    inactive = seed.point(db, active=False)
    for point_id in (inactive.id, str(uuid.uuid4())):
        with pytest.raises(HTTPException) as exc:
            await deliveries.register_delivery(make_request(ctx=seed.citizen_ctx()), _body(point_id))
        assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_anonymous_cannot_register(db, seed, make_request):
    point = seed.point(db)
    with pytest.raises(HTTPException) as exc:
        await deliveries.register_delivery(make_request(), _body(point.id))
    assert exc.value.status_code == 401


@pytest.mark.parametrize("weight", [0, -1, 1000.5])
def test_weight_out_of_range_rejected(weight):
    with pytest.raises(ValidationError):
        _body(str(uuid.uuid4()), weight=weight)


def test_unknown_material_rejected():
    with pytest.raises(ValidationError):
        _body(str(uuid.uuid4()), material="madeira")


@pytest.mark.asyncio
async def test_history_lists_only_own_deliveries(db, seed, make_request):
    seed.profile(db, "u-citizen")
    seed.profile(db, "u-other")
    point = seed.point(db)
    await deliveries.register_delivery(make_request(ctx=seed.citizen_ctx()), _body(point.id))
    await deliveries.register_delivery(make_request(ctx=seed.citizen_ctx("u-other")), _body(point.id))

    rows = await deliveries.list_deliveries(make_request(ctx=seed.citizen_ctx()))
    assert len(rows) == 1
    assert rows[0].material_type == MaterialType.PLASTICO


@pytest.mark.asyncio
async def test_quote():
    full = await deliveries.quote(material_type=MaterialType.VIDRO, weight_kg=2.5)
    assert (full.points_per_kg, full.points) == (8, 20)

    empty = await deliveries.quote(material_type=None, weight_kg=2.5)
    assert empty.points is None

    zero = await deliveries.quote(material_type=MaterialType.PAPEL, weight_kg=0)
    assert zero.points is None
