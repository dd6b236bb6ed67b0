"""
Client for the hosted authentication service.

Password storage, e-mail confirmation and recovery mails live with the
provider; this module only speaks its REST API:

  POST {AUTH_PROVIDER_URL}/auth/v1/signup
  POST {AUTH_PROVIDER_URL}/auth/v1/token?grant_type=password
  POST {AUTH_PROVIDER_URL}/auth/v1/recover

Every request carries the project's anon key in the ``apikey`` header.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ecorecicla import config

logger = logging.getLogger(__name__)

SIGNUP_PATH = "/auth/v1/signup"
TOKEN_PATH = "/auth/v1/token"
RECOVER_PATH = "/auth/v1/recover"

INVALID_CREDENTIALS = "Invalid login credentials"
ALREADY_REGISTERED = "User already registered"


class AuthProviderError(Exception):
    """The provider rejected a request or could not be reached.

    ``status_code`` is the provider's HTTP status, or ``None`` for transport
    failures.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ProviderUser:
    id: str
    email: str
    name: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "ProviderUser":
        meta = payload.get("user_metadata") or {}
        email = payload.get("email") or ""
        return cls(
            id=str(payload["id"]),
            email=email,
            name=meta.get("name") or "",
        )


def is_configured() -> bool:
    """Return True if the provider URL and anon key are set."""
    return bool(config.AUTH_PROVIDER_URL and config.AUTH_PROVIDER_ANON_KEY)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if not isinstance(body, dict):
        return str(body)
    for key in ("error_description", "msg", "message", "error"):
        if body.get(key):
            return str(body[key])
    return f"HTTP {resp.status_code}"


class AuthProviderClient:
    """Thin async wrapper over the provider's password-auth endpoints."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"apikey": self.anon_key, "Content-Type": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _post(self, path: str, payload: dict, params: Optional[dict] = None) -> dict:
        try:
            async with self._client() as client:
                resp = await client.post(path, json=payload, params=params)
        except httpx.HTTPError as exc:
            logger.error("Auth provider unreachable (%s): %s", path, exc)
            raise AuthProviderError("Serviço de autenticação indisponível.") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning("Auth provider %s -> %s: %s", path, resp.status_code, message)
            raise AuthProviderError(message, status_code=resp.status_code)
        if not resp.content:
            return {}
        return resp.json()

    async def sign_in(self, email: str, password: str) -> ProviderUser:
        """Password grant. Raises ``AuthProviderError`` on bad credentials."""
        body = await self._post(
            TOKEN_PATH,
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return ProviderUser.from_payload(body["user"])

    async def sign_up(self, email: str, password: str, name: str) -> ProviderUser:
        """Register a user; ``name`` is stored in the provider's user metadata."""
        body = await self._post(
            SIGNUP_PATH,
            {"email": email, "password": password, "data": {"name": name}},
        )
        # With e-mail confirmation on, the provider answers with the bare
        # user; otherwise it wraps it in a session.
        user = body.get("user") if "user" in body else body
        pu = ProviderUser.from_payload(user)
        if not pu.name:
            pu.name = name
        return pu

    async def send_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._post(RECOVER_PATH, {"email": email}, params=params)


def get_auth_provider() -> AuthProviderClient:
    return AuthProviderClient(
        config.AUTH_PROVIDER_URL,
        config.AUTH_PROVIDER_ANON_KEY,
        timeout=config.AUTH_PROVIDER_TIMEOUT_SECONDS,
    )
