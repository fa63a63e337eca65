"""Structured logging with structlog.

Security: bearer tokens, wallet signatures, ID tokens and exchange
secrets are NEVER logged. Wallet addresses are logged truncated.

Dashboard requests carry a request id (taken from ``X-Request-ID`` or
generated) that is bound into every log event emitted while the request
is handled, so a proxied call can be followed across the gateway and the
backend connector.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from pathlib import Path

import structlog


_CONFIGURED = False
_INSTALLED: list[logging.Handler] = []

# Fields that must NEVER appear in logs
_REDACTED_FIELDS = frozenset({
    "token", "access_token", "refresh_token", "id_token", "bearer_token",
    "authorization", "signature", "secret", "api_secret", "password",
    "private_key", "mnemonic",
})

# Third-party loggers that echo full request lines (query strings included)
_NOISY_LOGGERS = ("httpx", "httpcore", "werkzeug")


def _redact_processor(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Remove sensitive fields from log events."""
    for key in list(event_dict.keys()):
        if key.lower() in _REDACTED_FIELDS:
            event_dict[key] = "***REDACTED***"
    return event_dict


def _handlers(level: int, log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(path)))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: str | None = None,
) -> None:
    """Configure structlog over stdlib logging.

    May be called again once the app config is known: the handlers added
    by the previous call are removed and replaced.
    """
    global _CONFIGURED

    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in _INSTALLED:
        root.removeHandler(handler)
        handler.close()
    _INSTALLED.clear()

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _redact_processor,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if fmt == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )
    for handler in _handlers(log_level, log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)
        _INSTALLED.append(handler)

    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog bound logger."""
    if not _CONFIGURED:
        configure_logging(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            fmt=os.environ.get("LOG_FORMAT", "console"),
        )
    return structlog.get_logger(name)


# ── Request context ──────────────────────────────────────────────────

def bind_request(request_id: str | None, method: str, path: str) -> str:
    """Bind request fields to every log event until ``clear_request``."""
    rid = request_id or uuid.uuid4().hex[:16]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=rid, method=method, path=path)
    return rid


def clear_request() -> None:
    structlog.contextvars.clear_contextvars()
