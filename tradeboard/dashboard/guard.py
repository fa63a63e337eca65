"""Route guard: gate page navigations on the presence of the session cookie.

This is a navigation convenience, not an authorization boundary. The
cookie is only checked for presence; the backend validates the token on
every proxied request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote

from flask import Flask, redirect, request

from tradeboard.config import AppConfig, GuardConfig
from tradeboard.observability.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class GuardDecision:
    location: str | None = None  # None -> let the request through

    @property
    def allowed(self) -> bool:
        return self.location is None


ALLOW = GuardDecision()


def _matches(path: str, prefixes: Iterable[str]) -> bool:
    return any(path.startswith(prefix) for prefix in prefixes)


def evaluate(path: str, has_session: bool, config: GuardConfig) -> GuardDecision:
    """Decide what to do with a navigation to ``path``."""
    if _matches(path, config.skip_prefixes):
        return ALLOW
    if not has_session and _matches(path, config.protected_paths):
        return GuardDecision(f"{config.login_path}?redirect={quote(path, safe='/')}")
    if has_session and _matches(path, config.auth_paths):
        return GuardDecision(config.home_path)
    return ALLOW


def install_route_guard(app: Flask, config: AppConfig) -> None:
    """Register the guard as a before_request hook on ``app``."""
    cookie_name = config.session.cookie_name
    guard = config.guard

    @app.before_request
    def _route_guard():
        has_session = bool(request.cookies.get(cookie_name))
        decision = evaluate(request.path, has_session, guard)
        if decision.allowed:
            return None
        log.debug("guard.redirect", path=request.path, location=decision.location)
        return redirect(decision.location)
