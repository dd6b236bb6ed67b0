"""
EcoRecicla — System-wide constants.

Every magic number lives here. If you find a literal in the codebase that is
not a local variable, it belongs here instead.
"""

# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------

# Points awarded per kilogram delivered, keyed by material_type value.
POINTS_PER_KG = {
    "papel": 10,
    "plastico": 15,
    "vidro": 8,
    "metal": 20,
    "outro": 5,
}

# A single delivery must weigh more than zero and at most this much.
MAX_DELIVERY_WEIGHT_KG: float = 1000.0

# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

RECENT_ACTIVITY_LIMIT: int = 5
FEATURED_COUPONS_LIMIT: int = 3

# ---------------------------------------------------------------------------
# Map
# ---------------------------------------------------------------------------

# São Paulo, used when the caller's location is unknown.
DEFAULT_MAP_CENTER = (-23.5505, -46.6333)
DEFAULT_MAP_ZOOM: int = 13
EARTH_RADIUS_KM: float = 6371.0088
DIRECTIONS_URL_TEMPLATE = "https://www.google.com/maps/dir/?api=1&destination={lat},{lon}"

# ---------------------------------------------------------------------------
# Form limits
# ---------------------------------------------------------------------------

NAME_MIN_LENGTH: int = 2
PASSWORD_MIN_LENGTH: int = 6
POINT_NAME_MIN_LENGTH: int = 3
POINT_ADDRESS_MIN_LENGTH: int = 5
OPENING_HOURS_MIN_LENGTH: int = 3
PARTNER_NAME_MIN_LENGTH: int = 3
COUPON_TITLE_MIN_LENGTH: int = 3
COUPON_DESCRIPTION_MIN_LENGTH: int = 10
FEEDBACK_MAX_LENGTH: int = 2000
