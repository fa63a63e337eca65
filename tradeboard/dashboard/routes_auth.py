"""Auth gateway endpoints (/api/auth/*)."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from tradeboard.dashboard.common import bearer_token, call_gateway, json_body
from tradeboard.errors import Unauthorized
from tradeboard.observability.logger import get_logger

log = get_logger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _str(body: dict[str, Any], key: str, default: str = "") -> str:
    value = body.get(key, default)
    return value if isinstance(value, str) else default


@bp.route("/nonce", methods=["POST"])
def nonce() -> Any:
    """Issue a login challenge for a wallet address."""
    body = json_body()
    address = _str(body, "wallet_address")
    challenge = call_gateway(lambda gw: gw.request_nonce(address))
    return jsonify(challenge.model_dump())


@bp.route("/wallet", methods=["POST"])
def wallet() -> Any:
    """Verify a signed challenge and return an access token."""
    body = json_body()
    result = call_gateway(lambda gw: gw.verify_wallet_signature(
        _str(body, "wallet_address"),
        _str(body, "signature"),
        _str(body, "message"),
        _str(body, "chain", "ethereum"),
    ))
    return jsonify(result.model_dump())


@bp.route("/google", methods=["POST"])
def google() -> Any:
    body = json_body()
    id_token = _str(body, "id_token")
    result = call_gateway(lambda gw: gw.verify_google_id_token(id_token))
    return jsonify(result.model_dump())


@bp.route("/logout", methods=["POST"])
def logout() -> Any:
    """Always succeeds once a bearer header is present."""
    token = bearer_token()
    if not token:
        raise Unauthorized("Authorization header required")
    try:
        call_gateway(lambda gw: gw.logout(token))
    except Exception as e:  # the client clears its token regardless
        log.warning("auth.logout_error", error=str(e))
    return jsonify({"success": True})


@bp.route("/me", methods=["GET"])
def me() -> Any:
    token = bearer_token()
    user = call_gateway(lambda gw: gw.get_current_user(token))
    return jsonify(user.model_dump())


@bp.route("/refresh", methods=["POST"])
def refresh() -> Any:
    token = bearer_token()
    new_token = call_gateway(lambda gw: gw.refresh_token(token))
    return jsonify({"access_token": new_token, "token_type": "bearer"})
