"""Helpers shared by the proxy blueprints."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from flask import current_app, request

from tradeboard.config import AppConfig
from tradeboard.errors import Unauthorized, ValidationError
from tradeboard.gateway.auth import AuthGateway
from tradeboard.gateway.backend import BackendClient

T = TypeVar("T")


def app_config() -> AppConfig:
    return current_app.config["TRADEBOARD"]


def call_backend(fn: Callable[[BackendClient], Awaitable[T]]) -> T:
    """Run ``fn`` against a fresh BackendClient on a private event loop."""
    cfg = app_config()
    transport = current_app.config.get("BACKEND_TRANSPORT")

    async def _run() -> T:
        async with BackendClient(cfg.backend, transport=transport) as backend:
            return await fn(backend)

    return asyncio.run(_run())


def call_gateway(fn: Callable[[AuthGateway], Awaitable[T]]) -> T:
    return call_backend(lambda backend: fn(AuthGateway(backend)))


def bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def session_token() -> str:
    """Session cookie, or a bearer header for non-browser callers."""
    token = request.cookies.get(app_config().session.cookie_name) or bearer_token()
    if not token:
        raise Unauthorized("Authentication required")
    return token


def json_body(required: bool = True) -> dict[str, Any] | None:
    body = request.get_json(silent=True)
    if body is None:
        if required:
            raise ValidationError("Request body must be a JSON object")
        return None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body
