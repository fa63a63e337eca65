"""Dashboard — Flask application fronting the copy-trading backend.

Serves:
  - Page shells for the leaderboard, login, profile, exchange keys,
    settings, copy trading, portfolio and docs views
  - /api/auth/*   auth gateway (wallet + Google sign-in, session)
  - /api/...      resource proxy to the backend
  - /api/docs     local markdown docs
  - /health, /ready, /metrics

Page navigations pass through the route guard first. Every /api error,
expected or not, leaves as ``{"error": message}``.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

import httpx
from dotenv import load_dotenv
from flask import Flask, g, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from tradeboard.config import AppConfig, load_config
from tradeboard.dashboard import docs, routes_auth, routes_user
from tradeboard.dashboard.common import call_backend
from tradeboard.dashboard.guard import install_route_guard
from tradeboard.errors import GatewayError
from tradeboard.observability.logger import bind_request, clear_request, configure_logging, get_logger
from tradeboard.observability.metrics import metrics, render_prometheus
from tradeboard.observability.sentry_integration import init_sentry

log = get_logger(__name__)

_here = Path(__file__).resolve().parent

# path -> page title
PAGES: dict[str, str] = {
    "/": "Leaderboard",
    "/login": "Sign in",
    "/profile": "Profile",
    "/exchange-keys": "Exchange Keys",
    "/settings": "Settings",
    "/copy-trading": "Copy Trading",
    "/portfolio": "Portfolio",
    "/docs": "Documentation",
}


def create_app(
    config: AppConfig | None = None,
    backend_transport: httpx.AsyncBaseTransport | None = None,
) -> Flask:
    """Build the dashboard app. ``backend_transport`` replaces the network
    transport used for backend calls (tests pass an httpx.MockTransport)."""
    cfg = config or load_config()

    app = Flask(__name__, template_folder=str(_here / "templates"))
    app.config["TRADEBOARD"] = cfg
    app.config["BACKEND_TRANSPORT"] = backend_transport

    _register_hooks(app, cfg)
    install_route_guard(app, cfg)
    app.register_blueprint(routes_auth.bp)
    app.register_blueprint(routes_user.bp)
    app.register_blueprint(docs.bp)
    _register_pages(app)
    _register_probes(app)
    _register_error_handlers(app)
    return app


# ─── Pages ──────────────────────────────────────────────────────────

def _register_pages(app: Flask) -> None:
    def _make_view(path: str, title: str):
        def _view() -> str:
            return render_template("page.html", title=title, path=path)
        _view.__name__ = "page_" + (path.strip("/").replace("-", "_") or "home")
        return _view

    for path, title in PAGES.items():
        app.add_url_rule(path, view_func=_make_view(path, title))


# ─── Health & Readiness ────────────────────────────────────────────

def _register_probes(app: Flask) -> None:

    @app.route("/health")
    def health() -> Any:
        """Liveness probe. Returns 200 if the Flask process is up."""
        return jsonify({"status": "ok", "service": "tradeboard"})

    @app.route("/ready")
    def ready() -> Any:
        """Readiness probe: the backend must answer a leaderboard query."""
        try:
            call_backend(lambda backend: backend.request(
                "GET", "/api/v1/leaderboard",
                params={"sort_by": "win_rate", "order": "desc"},
                fallback="Backend not ready", op="ready",
            ))
        except GatewayError as e:
            return jsonify({"status": "not_ready", "backend": "error", "error": e.message}), 503
        return jsonify({"status": "ready", "backend": "connected"})

    @app.route("/metrics")
    def prometheus_metrics() -> Any:
        body = render_prometheus(metrics.snapshot())
        return body, 200, {"Content-Type": "text/plain; charset=utf-8"}


# ─── Request hooks ─────────────────────────────────────────────────

def _register_hooks(app: Flask, cfg: AppConfig) -> None:

    @app.before_request
    def _start_request() -> None:
        g.started = time.monotonic()
        g.request_id = bind_request(request.headers.get("X-Request-ID"), request.method, request.path)

    @app.after_request
    def _record(response: Any) -> Any:
        request_id = g.get("request_id")
        if request_id:
            response.headers["X-Request-ID"] = request_id
        if request.path.startswith("/api/"):
            response.headers["Access-Control-Allow-Origin"] = cfg.cors_allow_origin
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, X-Request-ID"
            if cfg.observability.enable_metrics:
                route = request.url_rule.rule if request.url_rule else "unmatched"
                metrics.incr("http.requests", route=route, status=str(response.status_code))
                started = g.get("started")
                if started is not None:
                    metrics.histogram("http.latency_ms", (time.monotonic() - started) * 1000, route=route)
        return response

    @app.teardown_request
    def _end_request(exc: BaseException | None) -> None:
        clear_request()


# ─── Errors ────────────────────────────────────────────────────────

def _register_error_handlers(app: Flask) -> None:

    @app.errorhandler(GatewayError)
    def _gateway_error(e: GatewayError) -> Any:
        return jsonify(e.to_payload()), e.status

    @app.errorhandler(Exception)
    def _unexpected(e: Exception) -> Any:
        if isinstance(e, HTTPException):
            if request.path.startswith("/api/"):
                return jsonify({"error": e.description or e.name}), e.code
            return e
        log.error("dashboard.unhandled_error", path=request.path, error=str(e), exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


# ─── Runner ────────────────────────────────────────────────────────

def run_dashboard(
    config_path: str | None = None,
    host: str = "127.0.0.1",
    port: int = 3000,
    debug: bool = False,
) -> None:
    """Start the dashboard Flask server."""
    load_dotenv()
    cfg = load_config(config_path)
    configure_logging(
        level=cfg.observability.log_level,
        fmt=cfg.observability.log_format,
        log_file=cfg.observability.log_file or None,
    )
    init_sentry()
    app = create_app(cfg)
    log.info("dashboard.starting", host=host, port=port, backend=cfg.backend.base_url)
    app.run(host=host, port=port, debug=debug)
