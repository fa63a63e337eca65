"""Shared configuration loader and Pydantic settings.

Supports:
  - YAML file loading with env var overrides
  - Subsystem configs: backend, session, guard, docs, observability
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_BACKEND_URL = "http://localhost:8000"


class BackendConfig(BaseModel):
    """External identity / trading backend."""
    base_url: str = DEFAULT_BACKEND_URL
    timeout_secs: float = 15.0
    connect_timeout_secs: float = 5.0
    max_retries: int = 2  # idempotent GETs only
    user_agent: str = "tradeboard/0.3"


class SessionConfig(BaseModel):
    cookie_name: str = "access_token"
    expires_days: int = 7
    store_path: str = "~/.tradeboard/session.json"


class GuardConfig(BaseModel):
    """Route guard: prefix lists for protected and auth-only pages."""
    protected_paths: list[str] = Field(default_factory=lambda: [
        "/profile", "/exchange-keys", "/settings", "/copy-trading", "/portfolio",
    ])
    auth_paths: list[str] = Field(default_factory=lambda: ["/login"])
    login_path: str = "/login"
    home_path: str = "/"
    skip_prefixes: list[str] = Field(default_factory=lambda: [
        "/api/", "/static/", "/favicon.ico", "/health", "/ready", "/metrics",
    ])


class DocsConfig(BaseModel):
    docs_dir: str = str(_PROJECT_ROOT / "docs")


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""
    enable_metrics: bool = True


class AppConfig(BaseModel):
    backend: BackendConfig = Field(default_factory=BackendConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    guard: GuardConfig = Field(default_factory=GuardConfig)
    docs: DocsConfig = Field(default_factory=DocsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    cors_allow_origin: str = "*"


# env var -> (section, field)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "API_URL": ("backend", "base_url"),
    "BACKEND_URL": ("backend", "base_url"),  # wins over API_URL
    "BACKEND_TIMEOUT_SECS": ("backend", "timeout_secs"),
    "SESSION_COOKIE_NAME": ("session", "cookie_name"),
    "SESSION_STORE_PATH": ("session", "store_path"),
    "DOCS_DIR": ("docs", "docs_dir"),
    "LOG_LEVEL": ("observability", "log_level"),
    "LOG_FORMAT": ("observability", "log_format"),
}


def _apply_env(raw: dict[str, Any]) -> dict[str, Any]:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw.setdefault(section, {})[key] = value
    return raw


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from YAML file, falling back to defaults, then apply env."""
    if path is None:
        path = _PROJECT_ROOT / "config.yaml"
    path = Path(path)
    raw: dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    return AppConfig(**_apply_env(raw))
