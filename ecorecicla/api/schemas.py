"""
EcoRecicla — API request/response schemas (Pydantic).

All FastAPI endpoints that accept or return structured data use these
models.  This gives us:
  • Automatic OpenAPI documentation
  • Runtime validation / coercion (form rules live here)
  • A stable contract between backend and frontend
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator

from ecorecicla.core.constants import (
    COUPON_DESCRIPTION_MIN_LENGTH,
    COUPON_TITLE_MIN_LENGTH,
    FEEDBACK_MAX_LENGTH,
    MAX_DELIVERY_WEIGHT_KG,
    NAME_MIN_LENGTH,
    OPENING_HOURS_MIN_LENGTH,
    PARTNER_NAME_MIN_LENGTH,
    PASSWORD_MIN_LENGTH,
    POINT_ADDRESS_MIN_LENGTH,
    POINT_NAME_MIN_LENGTH,
)
from ecorecicla.domain.enums import ActivityKind, MaterialType

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_email(value: str) -> str:
    value = value.strip()
    if not _EMAIL_RE.match(value):
        raise ValueError("Email inválido")
    return value.lower()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class SignupRequest(BaseModel):
    name: str = Field(..., min_length=NAME_MIN_LENGTH)
    email: str
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    confirm_password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("As senhas não coincidem")
        return self


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class ResetPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class UserOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    points_balance: Optional[int] = None


class LoginResponse(BaseModel):
    token: str
    user: UserOut


class SignupResponse(BaseModel):
    status: str = "created"
    user: UserOut
    message: str = "Verifique seu email para confirmar o cadastro. Você já pode fazer login."


# ---------------------------------------------------------------------------
# Collection points
# ---------------------------------------------------------------------------

class CollectionPointIn(BaseModel):
    """Admin create/update form."""
    name: str = Field(..., min_length=POINT_NAME_MIN_LENGTH)
    address: str = Field(..., min_length=POINT_ADDRESS_MIN_LENGTH)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    opening_hours: str = Field(..., min_length=OPENING_HOURS_MIN_LENGTH)


class CollectionPointOut(BaseModel):
    id: str
    name: str
    address: str
    latitude: float
    longitude: float
    opening_hours: str
    active: bool
    directions_url: str
    distance_km: Optional[float] = None


class MapConfigResponse(BaseModel):
    center_latitude: float
    center_longitude: float
    zoom: int


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------

class PartnerIn(BaseModel):
    name: str = Field(..., min_length=PARTNER_NAME_MIN_LENGTH)
    description: Optional[str] = None
    logo_url: Optional[HttpUrl] = None
    contact_email: str

    @field_validator("contact_email")
    @classmethod
    def validate_contact_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("logo_url", mode="before")
    @classmethod
    def blank_logo_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_row(self) -> dict:
        data = self.model_dump()
        data["logo_url"] = str(self.logo_url) if self.logo_url else None
        return data


class PartnerOption(BaseModel):
    id: str
    name: str


class PartnerOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    contact_email: str
    active: bool
    created_at: datetime


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------

class CouponIn(BaseModel):
    partner_id: UUID
    title: str = Field(..., min_length=COUPON_TITLE_MIN_LENGTH)
    description: str = Field(..., min_length=COUPON_DESCRIPTION_MIN_LENGTH)
    points_required: int = Field(..., gt=0)
    quantity_available: int = Field(..., gt=0)
    expiration_date: datetime

    @field_validator("expiration_date")
    @classmethod
    def expiration_as_naive_utc(cls, v: datetime) -> datetime:
        return _naive_utc(v)

    def to_row(self) -> dict:
        data = self.model_dump()
        data["partner_id"] = str(self.partner_id)
        return data


class CouponOut(BaseModel):
    id: str
    partner_id: str
    partner_name: Optional[str] = None
    title: str
    description: str
    points_required: int
    quantity_available: int
    expiration_date: datetime
    active: bool
    expired: bool = False
    sold_out: bool = False


class CouponPage(BaseModel):
    items: List[CouponOut]
    total: int
    page: int
    page_size: int
    total_pages: int
    showing_from: int
    showing_to: int


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------

class DeliveryIn(BaseModel):
    collection_point_id: UUID
    material_type: MaterialType
    weight_kg: float = Field(..., gt=0, le=MAX_DELIVERY_WEIGHT_KG)


class DeliveryOut(BaseModel):
    id: str
    collection_point_id: str
    collection_point_name: Optional[str] = None
    material_type: MaterialType
    weight_kg: float
    points_earned: int
    created_at: datetime


class DeliveryCreated(BaseModel):
    delivery: DeliveryOut
    points_balance: int
    message: str


class PointsQuote(BaseModel):
    material_type: Optional[MaterialType] = None
    weight_kg: Optional[float] = None
    points_per_kg: Optional[int] = None
    points: Optional[int] = None


# ---------------------------------------------------------------------------
# Redemptions
# ---------------------------------------------------------------------------

class RedemptionOut(BaseModel):
    id: str
    coupon_id: str
    coupon_title: Optional[str] = None
    partner_name: Optional[str] = None
    points_spent: Optional[int] = None
    redeemed_at: datetime


class RedeemResponse(BaseModel):
    redemption: RedemptionOut
    points_balance: int
    quantity_available: int


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------

class FeedbackIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=FEEDBACK_MAX_LENGTH)
    rating: Optional[int] = Field(None, ge=1, le=5)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Mensagem obrigatória")
        return v.strip()


class FeedbackOut(BaseModel):
    id: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Citizen dashboard
# ---------------------------------------------------------------------------

class ActivityItem(BaseModel):
    kind: ActivityKind
    title: str
    detail: str = ""
    points: int
    points_label: str
    occurred_at: datetime


class DashboardResponse(BaseModel):
    name: Optional[str] = None
    points_balance: int = 0
    kg_this_month: float = 0.0
    total_points_earned: int = 0
    deliveries_count: int = 0
    recent_activity: List[ActivityItem] = Field(default_factory=list)
    featured_coupons: List[CouponOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

class AdminStats(BaseModel):
    total_users: int = 0
    total_collection_points: int = 0
    total_partners: int = 0
    total_coupons: int = 0
    total_deliveries: int = 0
    total_points_distributed: int = 0


class AdminUser(BaseModel):
    id: str
    name: str
    email: str
    points_balance: int
    roles: List[str]
    created_at: datetime


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str
    version: str
    db: str = "ok"
    auth_configured: bool = False
    uptime_seconds: float = 0.0
    requests_total: int = 0
    errors_last_hour: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
