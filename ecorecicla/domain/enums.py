"""
ecorecicla.domain.enums — All enumerations used across the service.

Keep this module import-clean (stdlib only).
"""

from enum import Enum


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

class MaterialType(str, Enum):
    """Recyclable material accepted at collection points."""
    PAPEL    = "papel"
    PLASTICO = "plastico"
    VIDRO    = "vidro"
    METAL    = "metal"
    OUTRO    = "outro"

    @property
    def label(self) -> str:
        """Human-readable (pt-BR) name shown in activity feeds."""
        return {
            "papel":    "Papel",
            "plastico": "Plástico",
            "vidro":    "Vidro",
            "metal":    "Metal",
            "outro":    "Outro",
        }[self.value]


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class AppRole(str, Enum):
    ADMIN   = "admin"
    CITIZEN = "citizen"


# ---------------------------------------------------------------------------
# Coupon listing filters
# ---------------------------------------------------------------------------

class ValidityFilter(str, Enum):
    """Expiration filter on the public coupon listing."""
    ALL     = "all"
    VALID   = "valid"      # expiration_date >= now
    EXPIRED = "expired"    # expiration_date < now


class ActivityKind(str, Enum):
    """Entry type in the citizen dashboard's recent-activity feed."""
    DELIVERY   = "delivery"
    REDEMPTION = "redemption"
