"""
Centralized configuration for EcoRecicla.
All settings come from environment variables for 12-factor deployment.
"""

import os
import secrets


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list:
    return [s.strip() for s in os.environ.get(name, default).split(",") if s.strip()]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
# Any SQLAlchemy URL. In production this is the managed Postgres connection
# string; locally it falls back to a SQLite file in the project root.
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(_PROJECT_ROOT, 'ecorecicla.db')}",
)
DATABASE_ECHO = _env_bool("DATABASE_ECHO", False)
REDIS_URL = os.environ.get("REDIS_URL", "").strip()

# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:8001")

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
# Hosted auth service (password sign-in, sign-up, recovery e-mails).
AUTH_PROVIDER_URL = os.environ.get("AUTH_PROVIDER_URL", "").rstrip("/")
AUTH_PROVIDER_ANON_KEY = os.environ.get("AUTH_PROVIDER_ANON_KEY", "")
AUTH_PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("AUTH_PROVIDER_TIMEOUT_SECONDS", "10"))
PASSWORD_RESET_REDIRECT_URL = os.environ.get(
    "PASSWORD_RESET_REDIRECT_URL",
    f"{FRONTEND_URL}/auth?tab=reset",
)

AUTH_SECRET = os.environ.get("AUTH_SECRET", "") or secrets.token_hex(32)
SESSION_EXPIRY_SECONDS = int(os.environ.get("SESSION_EXPIRY_SECONDS", str(7 * 24 * 3600)))
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

# Login / signup attempts per client IP per minute (0 disables the limit).
AUTH_RATE_LIMIT_PER_MINUTE = int(os.environ.get("AUTH_RATE_LIMIT_PER_MINUTE", "10"))

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
PORT = int(os.environ.get("PORT", "8001"))
APP_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# CORS: Starlette mirrors the request Origin when credentials=True + "*",
# so the default allows any origin while still supporting Bearer tokens.
# ---------------------------------------------------------------------------
CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")

# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
COUPONS_PAGE_SIZE = int(os.environ.get("COUPONS_PAGE_SIZE", "9"))

# Wall-clock zone for calendar figures such as "kg this month".
LOCAL_TIMEZONE = os.environ.get("LOCAL_TIMEZONE", "America/Sao_Paulo")
