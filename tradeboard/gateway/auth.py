"""Auth gateway: credential-bearing operations forwarded to the backend.

Nothing here stores or inspects secret material; tokens, signatures and
ID tokens are passed through untouched. Each operation maps the backend's
failure modes onto the shared error taxonomy.
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from tradeboard.config import BackendConfig
from tradeboard.errors import (
    AuthFailed,
    BadRequest,
    GatewayError,
    RefreshFailed,
    Unauthorized,
    UpstreamError,
)
from tradeboard.gateway.backend import BackendClient
from tradeboard.gateway.models import AuthResult, NonceChallenge, User
from tradeboard.observability.logger import get_logger

log = get_logger(__name__)

_M = TypeVar("_M", bound=BaseModel)

# Upstream statuses that mean "the credential was rejected"
_REJECTED = frozenset({400, 401, 403, 422})


def _parse(model: type[_M], data: Any, what: str) -> _M:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        log.error("gateway.unexpected_payload", what=what, errors=e.error_count())
        raise UpstreamError(f"Unexpected {what} response from backend", status=502) from e


def _short(address: str) -> str:
    return address[:10] if address else ""


class AuthGateway:
    """Identity operations against the external backend."""

    def __init__(self, backend: BackendClient):
        self._backend = backend

    @classmethod
    def from_config(
        cls,
        config: BackendConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AuthGateway:
        return cls(BackendClient(config, transport=transport))

    @property
    def backend(self) -> BackendClient:
        return self._backend

    async def close(self) -> None:
        await self._backend.close()

    async def __aenter__(self) -> AuthGateway:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Wallet challenge / response ──────────────────────────────

    async def request_nonce(self, wallet_address: str) -> NonceChallenge:
        """Ask the backend for a single-use challenge bound to ``wallet_address``."""
        try:
            data = await self._backend.request(
                "POST",
                "/auth/nonce",
                json={"wallet_address": wallet_address},
                fallback="Failed to get nonce",
                op="auth.nonce",
            )
        except UpstreamError as e:
            if e.status in (400, 422):
                raise BadRequest(e.message, status=e.status) from e
            raise
        challenge = _parse(NonceChallenge, data, "nonce")
        log.info("gateway.nonce_issued", wallet=_short(wallet_address))
        return challenge

    async def verify_wallet_signature(
        self,
        wallet_address: str,
        signature: str,
        message: str,
        chain: str = "ethereum",
    ) -> AuthResult:
        """Exchange a signed challenge for an access token."""
        payload = {
            "wallet_address": wallet_address,
            "signature": signature,
            "message": message,
            "chain": chain,
        }
        result = await self._verify("/auth/wallet", payload, "Wallet authentication failed", "auth.wallet")
        log.info("gateway.wallet_verified", wallet=_short(wallet_address), chain=chain)
        return result

    async def verify_google_id_token(self, id_token: str) -> AuthResult:
        """Exchange a Google ID token for an access token."""
        result = await self._verify(
            "/auth/google", {"id_token": id_token}, "Google authentication failed", "auth.google",
        )
        log.info("gateway.google_verified")
        return result

    async def _verify(self, path: str, payload: dict[str, Any], fallback: str, op: str) -> AuthResult:
        try:
            data = await self._backend.request("POST", path, json=payload, fallback=fallback, op=op)
        except UpstreamError as e:
            if e.status in _REJECTED:
                raise AuthFailed(e.message, status=e.status) from e
            raise
        return _parse(AuthResult, data, "authentication")

    # ── Session ──────────────────────────────────────────────────

    async def logout(self, bearer_token: str | None) -> None:
        """Best-effort backend logout. Never raises.

        The caller always discards its local token, so an already-invalid
        token, a backend error or an unreachable backend are all treated
        as a completed logout.
        """
        if not bearer_token:
            return
        try:
            await self._backend.request(
                "POST", "/auth/logout", token=bearer_token, fallback="Logout failed", op="auth.logout",
            )
        except GatewayError as e:
            log.info("gateway.logout_ignored", status=e.status, error=e.message)

    async def get_current_user(self, bearer_token: str | None) -> User:
        """Resolve the user owning ``bearer_token``."""
        if not bearer_token:
            raise Unauthorized()
        data = await self._backend.request(
            "GET", "/auth/me", token=bearer_token, fallback="Failed to fetch user profile", op="auth.me",
        )
        return _parse(User, data, "user")

    async def refresh_token(self, bearer_token: str | None) -> str:
        """Trade the current token for a new one."""
        if not bearer_token:
            raise Unauthorized()
        try:
            data = await self._backend.request(
                "POST", "/auth/refresh", token=bearer_token, fallback="Token refresh failed", op="auth.refresh",
            )
        except UpstreamError as e:
            raise RefreshFailed(e.message, status=e.status) from e
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise RefreshFailed("Backend did not return a new token", status=502)
        log.info("gateway.token_refreshed")
        return token
