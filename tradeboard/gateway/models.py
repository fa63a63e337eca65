"""Gateway models: Pydantic models for identity payloads and listings."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from tradeboard.errors import UpstreamError
from tradeboard.observability.logger import get_logger

log = get_logger(__name__)


class LinkedWallet(BaseModel):
    """A wallet address linked to a user account."""
    address: str
    chain: str = "ethereum"
    created_at: str = ""


class User(BaseModel):
    """User resolved by the backend from a valid bearer token."""
    model_config = ConfigDict(extra="allow")

    id: int | str
    email: str | None = None
    created_at: str = ""
    wallets: list[LinkedWallet] = Field(default_factory=list)
    exchange_keys_count: int = 0
    copy_subscriptions_count: int = 0

    def has_wallet(self, address: str) -> bool:
        wanted = address.lower()
        return any(w.address.lower() == wanted for w in self.wallets)


class NonceChallenge(BaseModel):
    """Single-use challenge issued for one wallet login attempt."""
    nonce: str
    message: str
    expires_at: str = ""


class AuthResult(BaseModel):
    """Successful credential verification."""
    access_token: str
    token_type: str = "bearer"
    user: User | None = None
    is_new_user: bool = False
    expires_in: int = 0


# ── Listing envelope ─────────────────────────────────────────────────

ListingKind = Literal["list", "items", "data", "traders", "portfolios", "subscriptions", "keys"]

# Wrapper keys seen on backend listing responses, in lookup order
_WRAPPER_KEYS: tuple[str, ...] = (
    "traders", "data", "items", "portfolios", "subscriptions", "keys",
)


class Listing(BaseModel):
    """Uniform listing envelope; ``kind`` records the shape the backend used."""
    kind: ListingKind
    items: list[Any] = Field(default_factory=list)
    total: int = 0
    meta: dict[str, Any] = Field(default_factory=dict)


def normalize_listing(payload: Any) -> Listing:
    """Fold every backend listing shape into a single ``Listing``.

    Accepts a bare list or an object wrapping the list under one of
    ``traders | data | items | portfolios | subscriptions | keys``. Other
    top-level fields of a wrapper object are kept in ``meta``.

    An object with none of those lists is an empty listing (the whole
    object lands in ``meta``) unless it carries an ``error`` message, which
    is raised. Anything that is not a list or object is a 502.
    """
    if isinstance(payload, list):
        return Listing(kind="list", items=payload, total=len(payload))

    if isinstance(payload, dict):
        for key in _WRAPPER_KEYS:
            items = payload.get(key)
            if isinstance(items, list):
                meta = {k: v for k, v in payload.items() if k != key}
                total = meta.pop("total", None)
                if not isinstance(total, int) or isinstance(total, bool):
                    total = len(items)
                return Listing(kind=key, items=items, total=total, meta=meta)

        error = payload.get("error")
        if isinstance(error, str) and error.strip():
            raise UpstreamError(error.strip(), status=502)
        log.warning("listing.unrecognized_shape", keys=sorted(payload))
        return Listing(kind="list", items=[], total=0, meta=payload)

    raise UpstreamError("Unexpected listing response from backend", status=502)
