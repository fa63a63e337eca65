"""Optional Sentry error tracking integration.

Initialises Sentry SDK when SENTRY_DSN is set in environment.
"""

from __future__ import annotations

import os

from tradeboard.observability.logger import get_logger

log = get_logger(__name__)

_SENSITIVE_KEYS = (
    "token", "authorization", "signature", "secret", "password",
    "private_key", "api_key", "cookie",
)


def init_sentry() -> bool:
    """Initialise Sentry if SENTRY_DSN is configured. Returns True if active."""
    dsn = os.environ.get("SENTRY_DSN", "")
    if not dsn:
        return False

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    try:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.environ.get("ENVIRONMENT", "production"),
            release=os.environ.get("TRADEBOARD_VERSION", "0.3.0"),
            send_default_pii=False,
            before_send=_scrub_event,
        )
    except Exception as e:
        log.error("sentry.init_failed", error=str(e))
        return False
    log.info("sentry.initialised")
    return True


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(s in lowered for s in _SENSITIVE_KEYS)


def _scrub_event(event: dict, hint: dict) -> dict:
    """Remove credentials from Sentry events (extras, request headers, cookies)."""
    for key in list(event.get("extra", {}).keys()):
        if _is_sensitive(key):
            event["extra"][key] = "***REDACTED***"

    request = event.get("request") or {}
    headers = request.get("headers") or {}
    for key in list(headers.keys()):
        if _is_sensitive(key):
            headers[key] = "***REDACTED***"
    if "cookies" in request:
        request["cookies"] = "***REDACTED***"
    return event
