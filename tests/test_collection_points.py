from __future__ import annotations

import pytest
from fastapi import HTTPException

from ecorecicla.routers import collection_points as cp


@pytest.mark.asyncio
async def test_list_active_by_name(db, seed):
    seed.point(db, name="Zona Sul")
    seed.point(db, name="Aclimação")
    seed.point(db, name="Desativado", active=False)

    rows = await cp.list_collection_points(lat=None, lon=None)
    assert [r.name for r in rows] == ["Aclimação", "Zona Sul"]
    assert rows[0].distance_km is None
    assert rows[0].directions_url.startswith("https://www.google.com/maps/dir/?api=1&destination=")


@pytest.mark.asyncio
async def test_list_sorted_by_distance(db, seed):
    seed.point(db, name="Longe", lat=-22.9068, lon=-43.1729)  # Rio de Janeiro
    seed.point(db, name="Perto", lat=-23.5600, lon=-46.6400)

    rows = await cp.list_collection_points(lat=-23.5505, lon=-46.6333)
    assert [r.name for r in rows] == ["Perto", "Longe"]
    assert rows[0].distance_km < 2
    assert rows[1].distance_km > 300


@pytest.mark.asyncio
async def test_latitude_without_longitude_is_400(db):
    with pytest.raises(HTTPException) as exc:
        await cp.list_collection_points(lat=-23.5, lon=None)
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_map_config_defaults_to_sao_paulo():
    out = await cp.map_config()
    assert (out.center_latitude, out.center_longitude, out.zoom) == (-23.5505, -46.6333, 13)


@pytest.mark.asyncio
async def test_get_point(db, seed):
    point = seed.point(db)
    assert (await cp.get_point(point.id)).name == "Ecoponto Centro"
    with pytest.raises(HTTPException) as exc:
        await cp.get_point("missing")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_list_never_shows_inactive_points_even_with_location(db, seed):
    seed.point(db, name="Ativo", lat=-23.56, lon=-46.64)
    seed.point(db, name="Desativado", lat=-23.5505, lon=-46.6333, active=False)

    rows = await cp.list_collection_points(lat=-23.5505, lon=-46.6333)
    assert [r.name for r in rows] == ["Ativo"]


@pytest.mark.asyncio
async def test_get_inactive_point_is_404(db, seed):
    point = seed.point(db, name="Desativado", active=False)
    with pytest.raises(HTTPException) as exc:
        await cp.get_point(point.id)
    assert exc.value.status_code == 404
