"""
Relational Database Layer for EcoRecicla
Profiles, roles, collection points, partners, coupons, deliveries,
redemptions and feedback.

Production points ``DATABASE_URL`` at the managed Postgres instance; local
development and the test-suite run on SQLite.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import (
    create_engine, Column, Integer, Float, String, Boolean,
    DateTime, Text, Index, ForeignKey, event, func, update, select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ecorecicla import config

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


def make_engine(url: str, echo: bool = False):
    """Create an engine; SQLite gets cross-thread access and FK enforcement."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
        kwargs["poolclass"] = StaticPool
    eng = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(eng, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return eng


engine = make_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
Base = declarative_base()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Profile(Base):
    """One row per auth-provider user; id is the provider's user id."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    points_balance = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # admin | citizen
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_user_roles_user_role", "user_id", "role", unique=True),
    )


class CollectionPoint(Base):
    """Drop-off location shown on the map and offered in the delivery form."""
    __tablename__ = "collection_points"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, index=True)
    address = Column(String(512), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    opening_hours = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Partner(Base):
    """Business offering coupons."""
    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    logo_url = Column(String(1024), nullable=True)
    contact_email = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=_uuid)
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    points_required = Column(Integer, nullable=False)
    quantity_available = Column(Integer, nullable=False)
    expiration_date = Column(DateTime, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_coupons_active_points", "active", "points_required"),
    )


class Delivery(Base):
    """A citizen's drop-off of one material at one collection point."""
    __tablename__ = "deliveries"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    collection_point_id = Column(String(36), ForeignKey("collection_points.id"), nullable=False)
    material_type = Column(String(16), nullable=False)
    weight_kg = Column(Float, nullable=False)
    points_earned = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_deliveries_user_created", "user_id", "created_at"),
    )


class Redemption(Base):
    __tablename__ = "redemptions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    coupon_id = Column(String(36), ForeignKey("coupons.id"), nullable=False)
    redeemed_at = Column(DateTime, nullable=False, default=utcnow)


class Feedback(Base):
    __tablename__ = "feedbacks"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    rating = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class RedemptionRefused(Exception):
    """A coupon could not be redeemed; ``reason`` says why."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    SOLD_OUT = "sold_out"
    INSUFFICIENT_POINTS = "insufficient_points"

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason


class RowInUse(Exception):
    """A delete was rejected because other rows still reference the target."""


# ---------------------------------------------------------------------------
# Database initialization
# ---------------------------------------------------------------------------

def init_db():
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=engine)


def get_db() -> Session:
    """Get a database session. Caller must close it."""
    return SessionLocal()


def ping(db: Session) -> None:
    """Round-trip a trivial query; raises when the database is unreachable."""
    db.execute(select(1))


# ---------------------------------------------------------------------------
# Profiles and roles
# ---------------------------------------------------------------------------

def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.get(Profile, user_id)


def get_user_roles(db: Session, user_id: str) -> List[str]:
    rows = db.execute(
        select(UserRole.role).where(UserRole.user_id == user_id).order_by(UserRole.role)
    ).all()
    return [r[0] for r in rows]


def ensure_profile(db: Session, user_id: str, email: str, name: str) -> Profile:
    """Create the profile and its ``citizen`` role on first sight of a user."""
    profile = db.get(Profile, user_id)
    if profile is not None:
        return profile
    profile = Profile(id=user_id, email=email, name=name or email.split("@")[0], points_balance=0)
    db.add(profile)
    db.add(UserRole(user_id=user_id, role="citizen"))
    db.commit()
    logger.info("Profile created for user %s", user_id)
    return profile


def grant_role(db: Session, user_id: str, role: str) -> None:
    exists = db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)
    ).first()
    if exists is None:
        db.add(UserRole(user_id=user_id, role=role))
        db.commit()


def find_profiles_with_roles(db: Session) -> List[Tuple[Profile, List[str]]]:
    """All profiles, newest first, each paired with its role names."""
    profiles = db.query(Profile).order_by(Profile.created_at.desc()).all()
    roles: Dict[str, List[str]] = {}
    for user_id, role in db.execute(select(UserRole.user_id, UserRole.role)).all():
        roles.setdefault(user_id, []).append(role)
    return [(p, sorted(roles.get(p.id, []))) for p in profiles]


# ---------------------------------------------------------------------------
# Collection points and partners
# ---------------------------------------------------------------------------

def find_collection_points(db: Session, active_only: bool = True) -> List[CollectionPoint]:
    q = db.query(CollectionPoint)
    if active_only:
        q = q.filter(CollectionPoint.active.is_(True))
    return q.order_by(CollectionPoint.name.asc()).all()


def get_collection_point(db: Session, point_id: str) -> Optional[CollectionPoint]:
    return db.get(CollectionPoint, point_id)


def find_partners(db: Session, active_only: bool = True) -> List[Partner]:
    q = db.query(Partner)
    if active_only:
        q = q.filter(Partner.active.is_(True))
    return q.order_by(Partner.name.asc()).all()


def get_partner(db: Session, partner_id: str) -> Optional[Partner]:
    return db.get(Partner, partner_id)


# ---------------------------------------------------------------------------
# Generic admin mutations
# ---------------------------------------------------------------------------

def insert_row(db: Session, model, values: Dict[str, Any]):
    row = model(**values)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_row(db: Session, model, row_id: str, values: Dict[str, Any]):
    """Apply ``values`` to the row; returns None when it does not exist."""
    row = db.get(model, row_id)
    if row is None:
        return None
    for key, value in values.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


def toggle_active(db: Session, model, row_id: str):
    """Flip the ``active`` flag; returns None when the row does not exist."""
    row = db.get(model, row_id)
    if row is None:
        return None
    row.active = not row.active
    db.commit()
    db.refresh(row)
    return row


def delete_row(db: Session, model, row_id: str) -> bool:
    """Delete by primary key. Raises ``RowInUse`` on FK violations."""
    row = db.get(model, row_id)
    if row is None:
        return False
    db.delete(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise RowInUse(f"{model.__tablename__} {row_id} is still referenced") from exc
    return True


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------

def find_coupons_page(
    db: Session,
    partner_id: Optional[str] = None,
    validity: str = "all",
    offset: int = 0,
    limit: int = 9,
    now: Optional[datetime] = None,
) -> Tuple[List[Coupon], int]:
    """Active coupons ordered by ``points_required``; returns (page, total)."""
    now = now or utcnow()
    q = db.query(Coupon).filter(Coupon.active.is_(True))
    if partner_id:
        q = q.filter(Coupon.partner_id == partner_id)
    if validity == "valid":
        q = q.filter(Coupon.expiration_date >= now)
    elif validity == "expired":
        q = q.filter(Coupon.expiration_date < now)
    total = q.count()
    rows = (
        q.order_by(Coupon.points_required.asc(), Coupon.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def find_redeemable_coupons(db: Session, limit: int, now: Optional[datetime] = None) -> List[Coupon]:
    """Cheapest coupons a citizen could redeem right now (ignoring balance)."""
    now = now or utcnow()
    return (
        db.query(Coupon)
        .filter(
            Coupon.active.is_(True),
            Coupon.quantity_available > 0,
            Coupon.expiration_date >= now,
        )
        .order_by(Coupon.points_required.asc())
        .limit(limit)
        .all()
    )


def find_coupons_with_partner(db: Session) -> List[Tuple[Coupon, Optional[str]]]:
    """Every coupon, newest first, with its partner's name."""
    return (
        db.query(Coupon, Partner.name)
        .outerjoin(Partner, Partner.id == Coupon.partner_id)
        .order_by(Coupon.created_at.desc())
        .all()
    )


def get_coupon(db: Session, coupon_id: str) -> Optional[Coupon]:
    return db.get(Coupon, coupon_id)


def partner_names(db: Session, partner_ids: List[str]) -> Dict[str, str]:
    if not partner_ids:
        return {}
    rows = db.execute(
        select(Partner.id, Partner.name).where(Partner.id.in_(set(partner_ids)))
    ).all()
    return {pid: name for pid, name in rows}


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------

def record_delivery(
    db: Session,
    user_id: str,
    collection_point_id: str,
    material_type: str,
    weight_kg: float,
    points_earned: int,
) -> Tuple[Delivery, int]:
    """Insert a delivery and credit its points in one transaction.

    The balance is incremented in SQL so concurrent deliveries by the same
    user cannot overwrite each other. Returns ``(delivery, new_balance)``.
    """
    delivery = Delivery(
        user_id=user_id,
        collection_point_id=collection_point_id,
        material_type=material_type,
        weight_kg=weight_kg,
        points_earned=points_earned,
    )
    try:
        db.add(delivery)
        db.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(points_balance=Profile.points_balance + points_earned, updated_at=utcnow())
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    balance = db.execute(select(Profile.points_balance).where(Profile.id == user_id)).scalar_one()
    return delivery, balance


def find_user_deliveries(
    db: Session, user_id: str, limit: Optional[int] = None
) -> List[Tuple[Delivery, Optional[str]]]:
    """A user's deliveries, newest first, with the collection point name."""
    q = (
        db.query(Delivery, CollectionPoint.name)
        .outerjoin(CollectionPoint, CollectionPoint.id == Delivery.collection_point_id)
        .filter(Delivery.user_id == user_id)
        .order_by(Delivery.created_at.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def delivery_totals(db: Session, user_id: str, since: Optional[datetime] = None) -> Dict[str, float]:
    """Count, kg and points of a user's deliveries (optionally since a date)."""
    q = db.query(
        func.count(Delivery.id),
        func.coalesce(func.sum(Delivery.weight_kg), 0.0),
        func.coalesce(func.sum(Delivery.points_earned), 0),
    ).filter(Delivery.user_id == user_id)
    if since is not None:
        q = q.filter(Delivery.created_at >= since)
    count, kg, points = q.one()
    return {"count": int(count), "weight_kg": float(kg), "points": int(points)}


# ---------------------------------------------------------------------------
# Redemptions
# ---------------------------------------------------------------------------

def redeem_coupon(
    db: Session,
    user_id: str,
    coupon_id: str,
    now: Optional[datetime] = None,
) -> Tuple[Redemption, int, int]:
    """Spend points on one unit of a coupon.

    Balance decrement, stock decrement and the redemption insert commit
    together or not at all. Both decrements carry their own guard in the
    WHERE clause, so a concurrent redemption that wins the race makes this
    one fail cleanly instead of driving a counter negative.

    Returns ``(redemption, new_balance, remaining_quantity)``; raises
    ``RedemptionRefused``.
    """
    now = now or utcnow()
    coupon = db.get(Coupon, coupon_id)
    if coupon is None or not coupon.active:
        raise RedemptionRefused(RedemptionRefused.NOT_FOUND, "Cupom não encontrado.")
    if coupon.expiration_date < now:
        raise RedemptionRefused(RedemptionRefused.EXPIRED, "Cupom expirado.")
    if coupon.quantity_available <= 0:
        raise RedemptionRefused(RedemptionRefused.SOLD_OUT, "Cupom esgotado.")
    profile = db.get(Profile, user_id)
    cost = coupon.points_required
    if profile is None or profile.points_balance < cost:
        raise RedemptionRefused(
            RedemptionRefused.INSUFFICIENT_POINTS,
            "Você não tem pontos suficientes para resgatar este cupom.",
        )

    try:
        stock = db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.quantity_available > 0)
            .values(quantity_available=Coupon.quantity_available - 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if stock.rowcount != 1:
            raise RedemptionRefused(RedemptionRefused.SOLD_OUT, "Cupom esgotado.")

        balance = db.execute(
            update(Profile)
            .where(Profile.id == user_id, Profile.points_balance >= cost)
            .values(points_balance=Profile.points_balance - cost, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if balance.rowcount != 1:
            raise RedemptionRefused(
                RedemptionRefused.INSUFFICIENT_POINTS,
                "Você não tem pontos suficientes para resgatar este cupom.",
            )

        redemption = Redemption(user_id=user_id, coupon_id=coupon_id, redeemed_at=now)
        db.add(redemption)
        db.commit()
    except Exception:
        db.rollback()
        raise

    new_balance = db.execute(select(Profile.points_balance).where(Profile.id == user_id)).scalar_one()
    remaining = db.execute(select(Coupon.quantity_available).where(Coupon.id == coupon_id)).scalar_one()
    return redemption, new_balance, remaining


def find_user_redemptions(
    db: Session, user_id: str, limit: Optional[int] = None
) -> List[Tuple[Redemption, Optional[str], Optional[str], Optional[int]]]:
    """A user's redemptions, newest first, with coupon title, partner name and cost."""
    q = (
        db.query(Redemption, Coupon.title, Partner.name, Coupon.points_required)
        .outerjoin(Coupon, Coupon.id == Redemption.coupon_id)
        .outerjoin(Partner, Partner.id == Coupon.partner_id)
        .filter(Redemption.user_id == user_id)
        .order_by(Redemption.redeemed_at.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


# ---------------------------------------------------------------------------
# Admin statistics
# ---------------------------------------------------------------------------

def platform_stats(db: Session) -> Dict[str, int]:
    """Head counts per table plus the total points ever distributed."""
    deliveries, points = db.query(
        func.count(Delivery.id),
        func.coalesce(func.sum(Delivery.points_earned), 0),
    ).one()
    return {
        "total_users": db.query(func.count(Profile.id)).scalar() or 0,
        "total_collection_points": db.query(func.count(CollectionPoint.id)).scalar() or 0,
        "total_partners": db.query(func.count(Partner.id)).scalar() or 0,
        "total_coupons": db.query(func.count(Coupon.id)).scalar() or 0,
        "total_deliveries": int(deliveries),
        "total_points_distributed": int(points),
    }
