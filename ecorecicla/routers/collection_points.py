"""
Collection Point Endpoints for EcoRecicla (map + delivery form)

GET /api/collection-points             - active points, nearest first when lat/lon given
GET /api/collection-points/map-config  - default map centre and zoom
GET /api/collection-points/{point_id}  - one active point
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from ecorecicla.api.converters import to_point_out
from ecorecicla.api.schemas import CollectionPointOut, MapConfigResponse
from ecorecicla.core.constants import DEFAULT_MAP_CENTER, DEFAULT_MAP_ZOOM
from ecorecicla.core.utils import haversine_km
from ecorecicla.database import find_collection_points, get_collection_point, get_db

router = APIRouter(prefix="/api/collection-points", tags=["collection-points"])


@router.get("", response_model=List[CollectionPointOut])
async def list_collection_points(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
):
    """Active points ordered by name, or by distance from ``(lat, lon)`` when given."""
    if (lat is None) != (lon is None):
        raise HTTPException(status_code=400, detail="Informe latitude e longitude juntas")

    def _sync():
        db = get_db()
        try:
            return find_collection_points(db, active_only=True)
        finally:
            db.close()

    rows = await asyncio.to_thread(_sync)
    if lat is None:
        return [to_point_out(r) for r in rows]

    located = [(haversine_km(lat, lon, r.latitude, r.longitude), r) for r in rows]
    located.sort(key=lambda pair: pair[0])
    return [to_point_out(r, distance_km=d) for d, r in located]


@router.get("/map-config", response_model=MapConfigResponse)
async def map_config():
    """Where to centre the map before the browser reports a location."""
    return MapConfigResponse(
        center_latitude=DEFAULT_MAP_CENTER[0],
        center_longitude=DEFAULT_MAP_CENTER[1],
        zoom=DEFAULT_MAP_ZOOM,
    )


@router.get("/{point_id}", response_model=CollectionPointOut)
async def get_point(point_id: str):
    def _sync():
        db = get_db()
        try:
            return get_collection_point(db, point_id)
        finally:
            db.close()

    row = await asyncio.to_thread(_sync)
    if row is None or not row.active:
        raise HTTPException(status_code=404, detail="Ponto de coleta não encontrado")
    return to_point_out(row)
