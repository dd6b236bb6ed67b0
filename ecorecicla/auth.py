"""
Authentication for EcoRecicla.

Flow:
  1. POST /api/auth/signup  -> account created at the hosted auth service,
                               local profile + ``citizen`` role created
  2. POST /api/auth/login   -> credentials checked by the auth service,
                               signed session token issued
  3. Every other /api/* route reads the token (middleware in app.py) and
     sees a ``UserContext`` on ``request.state.user_ctx``
  4. Frontend checks /api/auth/me to see if logged in

Authentication supports two modes:
  - Bearer token via Authorization header (cross-domain SPA deployment)
  - Signed session cookie (same-origin)

Configuration is read from ecorecicla.config (see config.py).
"""

import asyncio
import base64
import hashlib
import hmac
import json
import logging
import time
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from ecorecicla import config
from ecorecicla.api.schemas import (
    LoginRequest,
    LoginResponse,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
    UserOut,
)
from ecorecicla.auth_provider import (
    ALREADY_REGISTERED,
    INVALID_CREDENTIALS,
    AuthProviderError,
    get_auth_provider,
    is_configured,
)
from ecorecicla.database import ensure_profile, get_db, get_profile, get_user_roles
from ecorecicla.domain.models import UserContext
from ecorecicla.rate_limiter import check_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

COOKIE_NAME = "ecorecicla_session"


# ---------------------------------------------------------------------------
# HMAC-signed session tokens (no external JWT dependency)
# ---------------------------------------------------------------------------

def _sign(payload_bytes: bytes) -> str:
    """Create HMAC-SHA256 signature."""
    return hmac.new(config.AUTH_SECRET.encode(), payload_bytes, hashlib.sha256).hexdigest()


def create_token(user_id: str, email: str, name: str) -> str:
    """Create a signed session token for a user."""
    payload = {
        "sub": user_id,
        "email": email,
        "name": name,
        "exp": int(time.time()) + config.SESSION_EXPIRY_SECONDS,
    }
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    sig = _sign(payload_b64.encode())
    return f"{payload_b64}.{sig}"


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a signed session token."""
    parts = token.split(".", 1)
    if len(parts) != 2:
        return None
    payload_b64, sig = parts
    if not hmac.compare_digest(sig, _sign(payload_b64.encode())):
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, TypeError):
        return None
    if not isinstance(payload, dict) or payload.get("exp", 0) < time.time():
        return None
    return payload


def get_token_payload(request: Request) -> Optional[dict]:
    """Extract the session payload from Bearer token or session cookie."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_token(auth_header[7:])
        if payload:
            return payload
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return decode_token(token)
    return None


# ---------------------------------------------------------------------------
# Route guards
# ---------------------------------------------------------------------------

def current_context(request: Request) -> UserContext:
    return getattr(request.state, "user_ctx", None) or UserContext.anonymous()


def require_user(request: Request) -> UserContext:
    ctx = current_context(request)
    if not ctx.is_authenticated:
        raise HTTPException(status_code=401, detail="Faça login para continuar.")
    return ctx


def require_admin(request: Request) -> UserContext:
    ctx = require_user(request)
    if not ctx.is_admin:
        raise HTTPException(
            status_code=403,
            detail="Você não tem permissão para acessar o painel administrativo",
        )
    return ctx


def _client_ip(request: Request) -> str:
    # Behind a proxy, uvicorn --proxy-headers rewrites client.host.
    return request.client.host if request.client else "unknown"


def _enforce_rate_limit(request: Request, bucket: str) -> None:
    allowed, _count = check_rate_limit(
        bucket=bucket,
        identity=_client_ip(request),
        limit_per_minute=config.AUTH_RATE_LIMIT_PER_MINUTE,
    )
    if not allowed:
        raise HTTPException(status_code=429, detail="Muitas tentativas. Aguarde um minuto.")


def _require_provider() -> None:
    if not is_configured():
        raise HTTPException(
            status_code=503,
            detail="Auth provider not configured. Set AUTH_PROVIDER_URL and AUTH_PROVIDER_ANON_KEY.",
        )


def _load_local_user(user_id: str, email: str, name: str):
    """Ensure the profile exists; return (profile, roles)."""
    db = get_db()
    try:
        profile = ensure_profile(db, user_id, email, name)
        roles = get_user_roles(db, user_id)
        return profile, roles
    finally:
        db.close()


def _user_out(profile, roles: List[str]) -> UserOut:
    return UserOut(
        id=profile.id,
        name=profile.name,
        email=profile.email,
        roles=roles,
        points_balance=profile.points_balance,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/signup", response_model=SignupResponse, status_code=201)
async def signup(request: Request, body: SignupRequest):
    """Register a citizen account."""
    _require_provider()
    _enforce_rate_limit(request, "signup")

    try:
        user = await get_auth_provider().sign_up(body.email, body.password, body.name)
    except AuthProviderError as exc:
        if exc.status_code is None:
            raise HTTPException(status_code=502, detail=exc.message)
        if ALREADY_REGISTERED.lower() in exc.message.lower():
            raise HTTPException(status_code=409, detail="Este email já está cadastrado")
        raise HTTPException(status_code=400, detail=exc.message)

    profile, roles = await asyncio.to_thread(_load_local_user, user.id, user.email, body.name)
    logger.info("User signed up: %s", user.id)
    return SignupResponse(user=_user_out(profile, roles))


@router.post("/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest):
    """Check credentials with the auth service and open a session."""
    _require_provider()
    _enforce_rate_limit(request, "login")

    try:
        user = await get_auth_provider().sign_in(body.email, body.password)
    except AuthProviderError as exc:
        if exc.status_code is None:
            raise HTTPException(status_code=502, detail=exc.message)
        if INVALID_CREDENTIALS.lower() in exc.message.lower():
            raise HTTPException(status_code=401, detail="Email ou senha incorretos")
        raise HTTPException(status_code=400, detail=exc.message)

    profile, roles = await asyncio.to_thread(_load_local_user, user.id, user.email, user.name)
    token = create_token(profile.id, profile.email, profile.name)
    logger.info("User logged in: %s", profile.id)

    payload = LoginResponse(token=token, user=_user_out(profile, roles))
    response = JSONResponse(payload.model_dump())
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=config.SESSION_EXPIRY_SECONDS,
        httponly=True,
        samesite="lax",
        secure=config.SESSION_COOKIE_SECURE,
    )
    return response


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    """Ask the auth service to e-mail a password-recovery link."""
    _require_provider()
    try:
        await get_auth_provider().send_password_reset(
            body.email, redirect_to=config.PASSWORD_RESET_REDIRECT_URL,
        )
    except AuthProviderError as exc:
        if exc.status_code is None:
            raise HTTPException(status_code=502, detail=exc.message)
        raise HTTPException(status_code=400, detail=exc.message)
    return {"status": "sent"}


@router.get("/me", response_model=UserOut)
async def me(request: Request):
    """Return the current logged-in user, or 401 if not authenticated."""
    ctx = require_user(request)

    def _sync():
        db = get_db()
        try:
            return get_profile(db, ctx.user_id)
        finally:
            db.close()

    profile = await asyncio.to_thread(_sync)
    return UserOut(
        id=ctx.user_id,
        name=profile.name if profile else ctx.name,
        email=profile.email if profile else ctx.email,
        roles=[r.value for r in ctx.roles],
        points_balance=profile.points_balance if profile else None,
    )


@router.post("/logout")
async def logout():
    """Clear the session cookie."""
    response = JSONResponse({"status": "logged_out"})
    response.delete_cookie(COOKIE_NAME)
    return response
