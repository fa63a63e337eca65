"""Resource proxy endpoints: leaderboard, exchange keys, copy-trading
subscriptions and portfolios.

These are pass-through: the backend owns validation, encryption of
exchange credentials and all trading logic. The only transformation
applied is folding listing responses into the ``Listing`` envelope.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from tradeboard.dashboard.common import call_backend, json_body, session_token
from tradeboard.gateway.models import normalize_listing

bp = Blueprint("user", __name__)


def _forward(
    method: str,
    path: str,
    *,
    fallback: str,
    op: str,
    token: str | None = None,
    body: Any = None,
    params: dict[str, Any] | None = None,
) -> Any:
    return call_backend(lambda backend: backend.request(
        method, path, token=token, json=body, params=params, fallback=fallback, op=op,
    ))


def _listing(data: Any) -> Any:
    return jsonify(normalize_listing(data).model_dump())


# ── Leaderboard (public) ─────────────────────────────────────────────

@bp.route("/api/leaderboard")
def leaderboard() -> Any:
    params: dict[str, Any] = {
        "sort_by": request.args.get("sort_by") or "win_rate",
        "order": request.args.get("order") or "desc",
    }
    search = request.args.get("search")
    if search:
        params["search"] = search
    data = _forward(
        "GET", "/api/v1/leaderboard",
        params=params, fallback="Failed to fetch leaderboard", op="leaderboard",
    )
    return _listing(data)


# ── Exchange keys ────────────────────────────────────────────────────

@bp.route("/api/user/exchange-keys", methods=["GET"])
def exchange_keys_list() -> Any:
    token = session_token()
    data = _forward(
        "GET", "/api/user/exchange-keys",
        token=token, fallback="Failed to fetch exchange keys", op="exchange_keys.list",
    )
    return _listing(data)


@bp.route("/api/user/exchange-keys", methods=["POST"])
def exchange_keys_create() -> Any:
    token = session_token()
    body = json_body()
    data = _forward(
        "POST", "/api/user/exchange-keys",
        token=token, body=body, fallback="Failed to create exchange key", op="exchange_keys.create",
    )
    return jsonify(data)


@bp.route("/api/user/exchange-keys/<int:key_id>", methods=["PUT"])
def exchange_keys_update(key_id: int) -> Any:
    token = session_token()
    body = json_body()
    data = _forward(
        "PUT", f"/api/user/exchange-keys/{key_id}",
        token=token, body=body, fallback="Failed to update exchange key", op="exchange_keys.update",
    )
    return jsonify(data)


@bp.route("/api/user/exchange-keys/<int:key_id>", methods=["DELETE"])
def exchange_keys_delete(key_id: int) -> Any:
    token = session_token()
    _forward(
        "DELETE", f"/api/user/exchange-keys/{key_id}",
        token=token, fallback="Failed to delete exchange key", op="exchange_keys.delete",
    )
    return jsonify({"message": "Exchange key deleted successfully"})


@bp.route("/api/user/exchange-keys/<int:key_id>/test", methods=["POST"])
def exchange_keys_test(key_id: int) -> Any:
    token = session_token()
    data = _forward(
        "POST", f"/api/user/exchange-keys/{key_id}/test",
        token=token, fallback="Failed to test exchange key", op="exchange_keys.test",
    )
    return jsonify(data)


# ── Copy-trading subscriptions ───────────────────────────────────────

@bp.route("/api/user/copy-subscriptions", methods=["GET"])
def subscriptions_list() -> Any:
    token = session_token()
    data = _forward(
        "GET", "/api/user/copy-subscriptions/",
        token=token, fallback="Failed to fetch copy subscriptions", op="subscriptions.list",
    )
    return _listing(data)


@bp.route("/api/user/copy-subscriptions", methods=["POST"])
def subscriptions_create() -> Any:
    token = session_token()
    body = json_body()
    data = _forward(
        "POST", "/api/user/copy-subscriptions/",
        token=token, body=body, fallback="Failed to create copy subscription", op="subscriptions.create",
    )
    return jsonify(data)


@bp.route("/api/user/copy-subscriptions/<int:sub_id>", methods=["GET"])
def subscriptions_get(sub_id: int) -> Any:
    token = session_token()
    data = _forward(
        "GET", f"/api/user/copy-subscriptions/{sub_id}",
        token=token, fallback="Failed to fetch copy subscription", op="subscriptions.get",
    )
    return jsonify(data)


@bp.route("/api/user/copy-subscriptions/<int:sub_id>", methods=["PUT"])
def subscriptions_update(sub_id: int) -> Any:
    token = session_token()
    body = json_body()
    data = _forward(
        "PUT", f"/api/user/copy-subscriptions/{sub_id}",
        token=token, body=body, fallback="Failed to update copy subscription", op="subscriptions.update",
    )
    return jsonify(data)


@bp.route("/api/user/copy-subscriptions/<int:sub_id>", methods=["DELETE"])
def subscriptions_delete(sub_id: int) -> Any:
    token = session_token()
    _forward(
        "DELETE", f"/api/user/copy-subscriptions/{sub_id}",
        token=token, fallback="Failed to delete copy subscription", op="subscriptions.delete",
    )
    return jsonify({"message": "Subscription deleted successfully"})


@bp.route("/api/user/copy-subscriptions/<int:sub_id>/pause", methods=["POST"])
def subscriptions_pause(sub_id: int) -> Any:
    token = session_token()
    _forward(
        "POST", f"/api/user/copy-subscriptions/{sub_id}/pause",
        token=token, fallback="Failed to pause copy subscription", op="subscriptions.pause",
    )
    return jsonify({"message": "Subscription paused successfully"})


@bp.route("/api/user/copy-subscriptions/<int:sub_id>/pending-orders", methods=["GET"])
def subscriptions_pending_orders(sub_id: int) -> Any:
    token = session_token()
    data = _forward(
        "GET", f"/api/user/copy-subscriptions/{sub_id}/pending-orders",
        token=token, fallback="Failed to fetch pending orders", op="subscriptions.pending_orders",
    )
    return jsonify(data)


# ── Portfolio ────────────────────────────────────────────────────────

@bp.route("/api/user/portfolio/<int:portfolio_id>", methods=["GET"])
def portfolio_get(portfolio_id: int) -> Any:
    token = session_token()
    data = _forward(
        "GET", f"/api/user/portfolio/{portfolio_id}",
        token=token, fallback="Failed to fetch portfolio", op="portfolio.get",
    )
    return jsonify(data)


@bp.route("/api/user/portfolio/<int:portfolio_id>/sync", methods=["POST"])
def portfolio_sync(portfolio_id: int) -> Any:
    token = session_token()
    body = json_body(required=False) or {}
    data = _forward(
        "POST", f"/api/user/portfolio/{portfolio_id}/sync",
        token=token, body=body, fallback="Failed to sync portfolio", op="portfolio.sync",
    )
    return jsonify(data)


@bp.route("/api/portfolio/copy-trading/performance", methods=["GET"])
def copy_trading_performance() -> Any:
    token = session_token()
    data = _forward(
        "GET", "/api/user/portfolio/copy-trading/performance",
        token=token, params=request.args.to_dict(), fallback="Failed to fetch copy trading performance",
        op="portfolio.copy_performance",
    )
    return jsonify(data)
