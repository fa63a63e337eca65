"""Shared test fixtures.

``FakeBackend`` stands in for the identity / trading backend behind an
httpx.MockTransport. It issues single-use nonces and checks wallet
signatures with eth_account, so the login flow is exercised end to end.
"""

from __future__ import annotations

import json
import re
import sys
import uuid
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

# Ensure the package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tradeboard.config import AppConfig, BackendConfig, DocsConfig, SessionConfig  # noqa: E402

BACKEND_URL = "http://backend.test"

_NONCE_RE = re.compile(r"Nonce: ([0-9a-f]+)")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class FakeBackend:
    """In-memory identity and resource backend."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.last_params: dict[str, str] = {}
        self.last_json: Any = None
        self.nonces: dict[str, str] = {}
        self.tokens: dict[str, dict[str, Any]] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self._overrides: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self._next_user_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ── test controls ───────────────────────────────────────────

    def fail(self, path: str, status: int, body: Any = None, text: str | None = None) -> None:
        """Answer every request to ``path`` with ``status``."""
        def _respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, json=body)
        self._overrides[path] = _respond

    def raise_on(self, path: str, exc_type: type[httpx.TransportError]) -> None:
        """Make every request to ``path`` fail at the transport level."""
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc_type("simulated transport failure", request=request)
        self._overrides[path] = _raise

    def fail_everything(self, exc_type: type[httpx.TransportError] = httpx.ConnectError) -> None:
        self.raise_on("*", exc_type)

    def issue_token(self, address: str = "0x" + "ab" * 20) -> str:
        user = self._user_for(address)
        token = "tok-" + uuid.uuid4().hex
        self.tokens[token] = user
        return token

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    # ── routing ─────────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        self.last_params = dict(request.url.params)
        self.last_json = _json(request)

        override = self._overrides.get(path) or self._overrides.get("*")
        if override is not None:
            return override(request)

        route = (request.method, path)
        if route == ("POST", "/auth/nonce"):
            return self._nonce(request)
        if route == ("POST", "/auth/wallet"):
            return self._wallet(request)
        if route == ("POST", "/auth/google"):
            return self._google(request)
        if route == ("POST", "/auth/logout"):
            self.tokens.pop(_bearer(request) or "", None)
            return httpx.Response(200, json={"message": "Successfully logged out"})
        if route == ("GET", "/auth/me"):
            user = self.tokens.get(_bearer(request) or "")
            if user is None:
                return httpx.Response(401, json={"detail": "Invalid or expired token"})
            return httpx.Response(200, json=user)
        if route == ("POST", "/auth/refresh"):
            user = self.tokens.pop(_bearer(request) or "", None)
            if user is None:
                return httpx.Response(401, json={"detail": "Invalid or expired token"})
            token = "tok-" + uuid.uuid4().hex
            self.tokens[token] = user
            return httpx.Response(200, json={"access_token": token, "token_type": "bearer"})
        if route == ("GET", "/api/v1/leaderboard"):
            return httpx.Response(200, json={
                "traders": [
                    {"trader_address": "0x" + "01" * 20, "win_rate": 0.71, "total_volume_usd": 125000,
                     "max_drawdown": 0.12, "trader_score": 8.4},
                    {"trader_address": "0x" + "02" * 20, "win_rate": 0.64, "total_volume_usd": 98000,
                     "max_drawdown": 0.2, "trader_score": 7.1},
                ],
                "total": 2,
                "page": 1,
            })
        if path.startswith("/api/user/"):
            return self._resource(request)
        return httpx.Response(404, json={"detail": "Not Found"})

    def _nonce(self, request: httpx.Request) -> httpx.Response:
        address = str((self.last_json or {}).get("wallet_address", ""))
        if not _ADDRESS_RE.match(address):
            return httpx.Response(422, json={"detail": [{"loc": ["body", "wallet_address"],
                                                          "msg": "Invalid wallet address"}]})
        nonce = uuid.uuid4().hex
        self.nonces[nonce] = address.lower()
        message = (
            "Sign in to Tradeboard\n\n"
            f"Wallet: {address}\n"
            f"Nonce: {nonce}\n"
            "This request will not trigger a blockchain transaction."
        )
        return httpx.Response(200, json={
            "nonce": nonce, "message": message, "expires_at": "2030-01-01T00:05:00Z",
        })

    def _wallet(self, request: httpx.Request) -> httpx.Response:
        body = self.last_json or {}
        message = str(body.get("message", ""))
        address = str(body.get("wallet_address", "")).lower()
        match = _NONCE_RE.search(message)
        # nonces are single use: popped before the signature is checked
        issued_to = self.nonces.pop(match.group(1), None) if match else None
        if issued_to is None or issued_to != address:
            return httpx.Response(401, json={"detail": "Invalid or expired nonce"})
        try:
            signer = Account.recover_message(
                encode_defunct(text=message), signature=str(body.get("signature", "")),
            )
        except Exception:
            return httpx.Response(401, json={"detail": "Invalid signature"})
        if signer.lower() != address:
            return httpx.Response(401, json={"detail": "Invalid signature"})

        is_new = address not in self.users
        user = self._user_for(address)
        token = "tok-" + uuid.uuid4().hex
        self.tokens[token] = user
        return httpx.Response(200, json={
            "access_token": token, "token_type": "bearer", "user": user,
            "is_new_user": is_new, "expires_in": 604800,
        })

    def _google(self, request: httpx.Request) -> httpx.Response:
        if (self.last_json or {}).get("id_token") != "google-ok":
            return httpx.Response(401, json={"detail": "Invalid Google token"})
        token = self.issue_token()
        return httpx.Response(200, json={"access_token": token, "user": self.tokens[token]})

    def _resource(self, request: httpx.Request) -> httpx.Response:
        if (_bearer(request) or "") not in self.tokens:
            return httpx.Response(401, json={"detail": "Not authenticated"})
        path = request.url.path
        if path == "/api/user/exchange-keys" and request.method == "GET":
            return httpx.Response(200, json={"keys": [{"id": 3, "exchange": "binance"}], "total": 1})
        if path == "/api/user/copy-subscriptions/" and request.method == "GET":
            return httpx.Response(200, json=[{"id": 7, "trader_address": "0x" + "01" * 20}])
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json={"ok": True, "path": path, "body": self.last_json})

    def _user_for(self, address: str) -> dict[str, Any]:
        key = address.lower()
        if key not in self.users:
            self.users[key] = {
                "id": self._next_user_id,
                "email": None,
                "created_at": "2024-05-01T12:00:00Z",
                "wallets": [{"address": address, "chain": "ethereum", "created_at": "2024-05-01T12:00:00Z"}],
                "exchange_keys_count": 0,
                "copy_subscriptions_count": 0,
            }
            self._next_user_id += 1
        return self.users[key]


def _bearer(request: httpx.Request) -> str | None:
    header = request.headers.get("Authorization", "")
    return header[7:] if header.startswith("Bearer ") else None


def _json(request: httpx.Request) -> Any:
    if not request.content:
        return None
    try:
        return json.loads(request.content)
    except ValueError:
        return None


# ── fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    d = tmp_path / "docs"
    d.mkdir()
    (d / "getting_started.md").write_text("# Getting started\n")
    (d / "API_Reference.md").write_text("# API\n")
    (d / "copy-trading.md").write_text("# Copy trading\n")
    return d


@pytest.fixture
def config(tmp_path: Path, docs_dir: Path) -> AppConfig:
    return AppConfig(
        backend=BackendConfig(base_url=BACKEND_URL, max_retries=0, timeout_secs=2),
        session=SessionConfig(store_path=str(tmp_path / "session.json")),
        docs=DocsConfig(docs_dir=str(docs_dir)),
    )
