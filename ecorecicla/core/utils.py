"""
EcoRecicla — Shared utilities.

Pure functions used across the whole service. No imports from other
ecorecicla modules; only the standard library and ecorecicla.core.constants
are allowed.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from ecorecicla.core.constants import (
    DIRECTIONS_URL_TEMPLATE,
    EARTH_RADIUS_KM,
    MAX_DELIVERY_WEIGHT_KG,
    POINTS_PER_KG,
)


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (``2.5 → 3``).

    Python's ``round`` uses banker's rounding, which would award
    ``round(2.5) == 2`` points.
    """
    return int(math.floor(value + 0.5))


def is_valid_weight(weight_kg: float) -> bool:
    """Return True when ``0 < weight_kg <= MAX_DELIVERY_WEIGHT_KG``."""
    return 0 < weight_kg <= MAX_DELIVERY_WEIGHT_KG


def points_for_delivery(material_type: str, weight_kg: float) -> int:
    """Points earned for delivering ``weight_kg`` of ``material_type``.

    Raises ``KeyError`` for an unknown material.
    """
    return round_half_up(weight_kg * POINTS_PER_KG[material_type])


def quote_points(material_type: Optional[str], weight_kg: Optional[float]) -> Optional[int]:
    """Live preview used while a delivery form is being filled in.

    Returns ``None`` until both a known material and a positive weight are
    present.
    """
    if not material_type or material_type not in POINTS_PER_KG:
        return None
    if weight_kg is None or weight_kg <= 0:
        return None
    return points_for_delivery(material_type, weight_kg)


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def page_offset(page: int, page_size: int) -> int:
    """Zero-based row offset of a one-based ``page``."""
    return (max(1, page) - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    """Number of pages needed for ``total`` rows; never less than 1."""
    if page_size <= 0:
        return 1
    return max(1, math.ceil(max(0, total) / page_size))


def showing_range(page: int, page_size: int, total: int) -> Tuple[int, int]:
    """``(first, last)`` one-based row numbers shown on ``page``.

    Both are clamped to ``total`` so an empty result reads ``(0, 0)``.
    """
    first = min(page_offset(page, page_size) + 1, max(0, total))
    last = min(max(1, page) * page_size, max(0, total))
    return first, last


# ---------------------------------------------------------------------------
# Geo
# ---------------------------------------------------------------------------

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two WGS84 points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def directions_url(latitude: float, longitude: float) -> str:
    """Google Maps driving-directions link to a coordinate."""
    return DIRECTIONS_URL_TEMPLATE.format(lat=latitude, lon=longitude)


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

def month_start(now: datetime) -> datetime:
    """First instant of the calendar month containing ``now``."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def local_month_start_utc(now_utc: datetime, tz_name: str) -> datetime:
    """Naive UTC instant at which the month began on the wall clock of ``tz_name``.

    ``now_utc`` is naive UTC, as stored in the database.
    """
    tz = ZoneInfo(tz_name)
    local_now = now_utc.replace(tzinfo=timezone.utc).astimezone(tz)
    local_start = month_start(local_now.replace(tzinfo=None)).replace(tzinfo=tz)
    return local_start.astimezone(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_points(amount: int) -> str:
    """Signed points label as shown in activity feeds, e.g. ``+250 pts``."""
    sign = "+" if amount >= 0 else "-"
    return f"{sign}{abs(int(amount)):,} pts"
