"""
Pytest configuration and shared fixtures.

Fixtures available to all tests:
  • db            — fresh in-memory schema, patched into ecorecicla.database
  • make_request  — build a starlette Request carrying a UserContext
  • seed          — helpers that insert profiles, points, partners, coupons
"""

from __future__ import annotations

import os
import sys
from datetime import timedelta
from types import SimpleNamespace
from typing import List, Optional

import pytest

# Ensure the project root is on the path so ecorecicla imports resolve.
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTH_SECRET", "test-secret")

from sqlalchemy.orm import sessionmaker  # noqa: E402
from starlette.requests import Request  # noqa: E402

from ecorecicla import database  # noqa: E402
from ecorecicla.domain.enums import AppRole  # noqa: E402
from ecorecicla.domain.models import UserContext  # noqa: E402


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def db(monkeypatch):
    """Isolated in-memory database; every ``get_db()`` call lands here."""
    engine = database.make_engine("sqlite:///:memory:")
    database.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(database, "SessionLocal", factory)
    monkeypatch.setattr(database, "engine", engine)
    session = factory()
    yield session
    session.close()
    engine.dispose()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

def _build_request(
    path: str = "/",
    method: str = "GET",
    ctx: Optional[UserContext] = None,
    headers: Optional[List[tuple]] = None,
    client_ip: str = "127.0.0.1",
) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "headers": headers or [],
        "query_string": b"",
        "client": (client_ip, 50000),
        "scheme": "http",
        "server": ("testserver", 80),
    }
    request = Request(scope)
    request.state.user_ctx = ctx or UserContext.anonymous()
    return request


@pytest.fixture
def make_request():
    return _build_request


def citizen_ctx(user_id: str = "u-citizen", name: str = "Maria") -> UserContext:
    return UserContext(
        user_id=user_id,
        email=f"{user_id}@example.com",
        name=name,
        roles=[AppRole.CITIZEN],
    )


def admin_ctx(user_id: str = "u-admin") -> UserContext:
    return UserContext(
        user_id=user_id,
        email=f"{user_id}@example.com",
        name="Admin",
        roles=[AppRole.ADMIN, AppRole.CITIZEN],
    )


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

def _profile(db, user_id="u-citizen", name="Maria", balance=0, roles=("citizen",)):
    profile = database.Profile(
        id=user_id, name=name, email=f"{user_id}@example.com", points_balance=balance,
    )
    db.add(profile)
    for role in roles:
        db.add(database.UserRole(user_id=user_id, role=role))
    db.commit()
    return profile


def _point(db, name="Ecoponto Centro", lat=-23.5505, lon=-46.6333, active=True):
    return database.insert_row(db, database.CollectionPoint, {
        "name": name,
        "address": "Rua Exemplo, 100",
        "latitude": lat,
        "longitude": lon,
        "opening_hours": "Seg-Sex 8h-18h",
        "active": active,
    })


def _partner(db, name="Mercado Verde", active=True):
    return database.insert_row(db, database.Partner, {
        "name": name,
        "description": "Supermercado do bairro",
        "contact_email": "contato@mercadoverde.com",
        "active": active,
    })


def _coupon(
    db,
    partner,
    title="10% de desconto",
    points=100,
    quantity=5,
    days=30,
    active=True,
):
    return database.insert_row(db, database.Coupon, {
        "partner_id": partner.id,
        "title": title,
        "description": "Desconto em qualquer compra",
        "points_required": points,
        "quantity_available": quantity,
        "expiration_date": database.utcnow() + timedelta(days=days),
        "active": active,
    })


@pytest.fixture
def seed():
    return SimpleNamespace(
        profile=_profile,
        point=_point,
        partner=_partner,
        coupon=_coupon,
        citizen_ctx=citizen_ctx,
        admin_ctx=admin_ctx,
    )
