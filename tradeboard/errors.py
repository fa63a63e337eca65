"""Error taxonomy shared by the gateway, session manager and wallet client.

Gateway errors carry the HTTP status they should surface with, so every
proxy handler can render them as the same ``{"error": message}`` envelope
without branching on backend-specific error shapes.
"""

from __future__ import annotations

from typing import Any


class TradeboardError(Exception):
    """Base class for all tradeboard errors."""


# ── Gateway ──────────────────────────────────────────────────────────

class GatewayError(TradeboardError):
    """A request through the gateway could not be completed."""
    status: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, status: int | None = None):
        self.message = message or self.default_message
        if status is not None:
            self.status = status
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class ValidationError(GatewayError):
    """Required local input is missing (e.g. no Authorization header)."""
    status = 400
    default_message = "Invalid request"


class Unauthorized(GatewayError):
    """No session token available; checked before any network call."""
    status = 401
    default_message = "Authentication required"


class UpstreamError(GatewayError):
    """Backend answered with a non-2xx status."""
    default_message = "Backend request failed"


class BadRequest(UpstreamError):
    """Backend rejected the input (400/422)."""
    status = 400
    default_message = "Bad request"


class AuthFailed(UpstreamError):
    """Backend rejected the credential (signature, nonce or ID token)."""
    status = 401
    default_message = "Authentication failed"


class RefreshFailed(UpstreamError):
    """Backend refused to issue a new token."""
    status = 401
    default_message = "Token refresh failed"


class NetworkError(GatewayError):
    """The request to the backend did not complete."""
    status = 500
    default_message = "Internal server error"


class GatewayTimeout(GatewayError):
    """The backend did not answer before the deadline."""
    status = 504
    default_message = "Backend request timed out"


# ── Wallet ───────────────────────────────────────────────────────────

class WalletError(TradeboardError):
    """Wallet capability failed."""


class WalletUnavailable(WalletError):
    """No wallet provider present."""


class NotConnected(WalletError):
    """Signing requested before a successful connect()."""


class UserRejected(WalletError):
    """The user cancelled the request in the wallet."""


class SigningFailed(WalletError):
    """The wallet failed to produce a signature."""
