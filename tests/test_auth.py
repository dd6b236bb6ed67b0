from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from ecorecicla import auth, rate_limiter
from ecorecicla.api.schemas import LoginRequest, ResetPasswordRequest, SignupRequest
from ecorecicla.auth_provider import AuthProviderError, ProviderUser
from ecorecicla.cache_backend import MemoryCacheBackend
from ecorecicla.database import get_user_roles


class FakeProvider:
    def __init__(self, error: AuthProviderError = None):
        self.error = error
        self.calls = []

    async def sign_in(self, email, password):
        self.calls.append(("sign_in", email))
        if self.error:
            raise self.error
        return ProviderUser(id="u1", email=email, name="Ana")

    async def sign_up(self, email, password, name):
        self.calls.append(("sign_up", email))
        if self.error:
            raise self.error
        return ProviderUser(id="u-new", email=email, name=name)

    async def send_password_reset(self, email, redirect_to=None):
        self.calls.append(("reset", email, redirect_to))
        if self.error:
            raise self.error


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    monkeypatch.setattr(auth, "get_auth_provider", lambda: fake)
    monkeypatch.setattr(auth, "is_configured", lambda: True)
    monkeypatch.setattr(auth, "check_rate_limit", lambda **_kwargs: (True, 1))
    return fake


def _login_body(password="secret1"):
    return LoginRequest(email="Ana@Example.com", password=password)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class TestTokens:
    def test_round_trip(self):
        token = auth.create_token("u1", "ana@example.com", "Ana")
        payload = auth.decode_token(token)
        assert payload["sub"] == "u1"
        assert payload["email"] == "ana@example.com"

    def test_tampered_signature_rejected(self):
        token = auth.create_token("u1", "ana@example.com", "Ana")
        payload_b64, sig = token.split(".", 1)
        assert auth.decode_token(f"{payload_b64}.{'0' * len(sig)}") is None
        assert auth.decode_token("garbage") is None

    def test_expired_token_rejected(self, monkeypatch):
        monkeypatch.setattr(auth.config, "SESSION_EXPIRY_SECONDS", -10)
        assert auth.decode_token(auth.create_token("u1", "a@b.co", "A")) is None

    def test_bearer_header_and_cookie(self, make_request):
        token = auth.create_token("u1", "ana@example.com", "Ana")
        bearer = make_request(headers=[(b"authorization", f"Bearer {token}".encode())])
        cookie = make_request(headers=[(b"cookie", f"{auth.COOKIE_NAME}={token}".encode())])
        assert auth.get_token_payload(bearer)["sub"] == "u1"
        assert auth.get_token_payload(cookie)["sub"] == "u1"
        assert auth.get_token_payload(make_request()) is None


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

class TestGuards:
    def test_anonymous_gets_401(self, make_request):
        with pytest.raises(HTTPException) as exc:
            auth.require_user(make_request())
        assert exc.value.status_code == 401

    def test_citizen_is_not_admin(self, make_request, seed):
        request = make_request(ctx=seed.citizen_ctx())
        assert auth.require_user(request).user_id == "u-citizen"
        with pytest.raises(HTTPException) as exc:
            auth.require_admin(request)
        assert exc.value.status_code == 403

    def test_admin_passes(self, make_request, seed):
        assert auth.require_admin(make_request(ctx=seed.admin_ctx())).is_admin


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_issues_token_cookie_and_creates_profile(db, provider, make_request):
    response = await auth.login(make_request("/api/auth/login", "POST"), _login_body())

    body = json.loads(response.body)
    assert body["user"]["id"] == "u1"
    assert body["user"]["email"] == "ana@example.com"
    assert body["user"]["roles"] == ["citizen"]
    assert body["user"]["points_balance"] == 0
    assert auth.decode_token(body["token"])["sub"] == "u1"
    assert f"{auth.COOKIE_NAME}=" in response.headers["set-cookie"]
    assert get_user_roles(db, "u1") == ["citizen"]


@pytest.mark.asyncio
async def test_login_bad_credentials_is_401(db, provider, make_request):
    provider.error = AuthProviderError("Invalid login credentials", status_code=400)
    with pytest.raises(HTTPException) as exc:
        await auth.login(make_request("/api/auth/login", "POST"), _login_body())
    assert exc.value.status_code == 401
    assert exc.value.detail == "Email ou senha incorretos"


@pytest.mark.asyncio
async def test_login_provider_down_is_502(db, provider, make_request):
    provider.error = AuthProviderError("Serviço de autenticação indisponível.")
    with pytest.raises(HTTPException) as exc:
        await auth.login(make_request("/api/auth/login", "POST"), _login_body())
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_login_rate_limited(db, provider, make_request, monkeypatch):
    monkeypatch.setattr(auth, "check_rate_limit", lambda **_kwargs: (False, 11))
    with pytest.raises(HTTPException) as exc:
        await auth.login(make_request("/api/auth/login", "POST"), _login_body())
    assert exc.value.status_code == 429
    assert provider.calls == []


@pytest.mark.asyncio
async def test_unconfigured_provider_is_503(make_request, monkeypatch):
    monkeypatch.setattr(auth, "is_configured", lambda: False)
    with pytest.raises(HTTPException) as exc:
        await auth.login(make_request("/api/auth/login", "POST"), _login_body())
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_signup_creates_citizen(db, provider, make_request):
    body = SignupRequest(
        name="João", email="joao@example.com", password="secret1", confirm_password="secret1",
    )
    out = await auth.signup(make_request("/api/auth/signup", "POST"), body)
    assert out.status == "created"
    assert out.user.id == "u-new"
    assert out.user.name == "João"
    assert get_user_roles(db, "u-new") == ["citizen"]


@pytest.mark.asyncio
async def test_signup_duplicate_email_is_409(db, provider, make_request):
    provider.error = AuthProviderError("User already registered", status_code=422)
    body = SignupRequest(
        name="João", email="joao@example.com", password="secret1", confirm_password="secret1",
    )
    with pytest.raises(HTTPException) as exc:
        await auth.signup(make_request("/api/auth/signup", "POST"), body)
    assert exc.value.status_code == 409


def test_signup_password_mismatch_rejected():
    with pytest.raises(ValueError):
        SignupRequest(name="João", email="joao@example.com", password="secret1", confirm_password="secret2")


def test_invalid_email_rejected():
    with pytest.raises(ValueError):
        LoginRequest(email="not-an-email", password="secret1")


@pytest.mark.asyncio
async def test_reset_password_forwards_redirect(provider):
    out = await auth.reset_password(ResetPasswordRequest(email="ana@example.com"))
    assert out == {"status": "sent"}
    assert provider.calls == [("reset", "ana@example.com", auth.config.PASSWORD_RESET_REDIRECT_URL)]


@pytest.mark.asyncio
async def test_me_returns_profile_and_roles(db, seed, make_request):
    seed.profile(db, "u-citizen", balance=120)
    out = await auth.me(make_request(ctx=seed.citizen_ctx()))
    assert out.id == "u-citizen"
    assert out.points_balance == 120
    assert out.roles == ["citizen"]


@pytest.mark.asyncio
async def test_me_anonymous_is_401(make_request):
    with pytest.raises(HTTPException) as exc:
        await auth.me(make_request())
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_logout_clears_cookie():
    response = await auth.logout()
    assert auth.COOKIE_NAME in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_login_unconfirmed_email_keeps_provider_message(db, provider, make_request):
    provider.error = AuthProviderError("Email not confirmed", status_code=400)
    with pytest.raises(HTTPException) as exc:
        await auth.login(make_request("/api/auth/login", "POST"), _login_body())
    assert exc.value.status_code == 400
    assert exc.value.detail == "Email not confirmed"


def test_rate_limit_ignores_forwarded_for_from_same_socket(make_request, monkeypatch):
    cache = MemoryCacheBackend()
    monkeypatch.setattr(rate_limiter, "get_cache_backend", lambda: cache)
    monkeypatch.setattr(rate_limiter, "time", SimpleNamespace(time=lambda: 1_700_000_000.0))
    monkeypatch.setattr(auth.config, "AUTH_RATE_LIMIT_PER_MINUTE", 2)

    blocked = 0
    for i in range(20):
        request = make_request(
            "/api/auth/login", "POST",
            headers=[(b"x-forwarded-for", f"10.0.0.{i}".encode())],
            client_ip="203.0.113.7",
        )
        try:
            auth._enforce_rate_limit(request, "login")
        except HTTPException as exc:
            assert exc.status_code == 429
            blocked += 1
    assert blocked == 18


def test_rate_limit_counts_each_socket_separately(make_request, monkeypatch):
    cache = MemoryCacheBackend()
    monkeypatch.setattr(rate_limiter, "get_cache_backend", lambda: cache)
    monkeypatch.setattr(rate_limiter, "time", SimpleNamespace(time=lambda: 1_700_000_000.0))
    monkeypatch.setattr(auth.config, "AUTH_RATE_LIMIT_PER_MINUTE", 1)

    auth._enforce_rate_limit(make_request(client_ip="203.0.113.7"), "login")
    auth._enforce_rate_limit(make_request(client_ip="203.0.113.8"), "login")
    with pytest.raises(HTTPException):
        auth._enforce_rate_limit(make_request(client_ip="203.0.113.7"), "login")
