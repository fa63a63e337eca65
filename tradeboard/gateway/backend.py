"""External backend connector.

Every call to the identity / trading backend goes through
``BackendClient.request``, which:
  - attaches the bearer token when one is given
  - enforces the configured deadline (timeout -> GatewayTimeout)
  - retries idempotent GETs on connect errors
  - turns non-2xx answers into UpstreamError with a message extracted from
    whatever error shape the backend used
"""

from __future__ import annotations

import time
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from tradeboard.config import BackendConfig
from tradeboard.errors import GatewayTimeout, NetworkError, UpstreamError
from tradeboard.observability.logger import get_logger
from tradeboard.observability.metrics import metrics

log = get_logger(__name__)

_MAX_MESSAGE_LEN = 300


class BackendClient:
    """Async client for the external backend."""

    def __init__(
        self,
        config: BackendConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config or BackendConfig()
        self._base = self._config.base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base,
                timeout=httpx.Timeout(
                    self._config.timeout_secs,
                    connect=self._config.connect_timeout_secs,
                ),
                headers={
                    "Accept": "application/json",
                    "User-Agent": self._config.user_agent,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Requests ─────────────────────────────────────────────────

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        fallback: str = "Backend request failed",
        op: str = "backend",
    ) -> Any:
        """Send one request and return the decoded JSON body (None if empty)."""
        client = await self._ensure_client()
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        started = time.monotonic()
        try:
            if method.upper() == "GET":
                resp = await self._send_idempotent(client, path, headers, params)
            else:
                resp = await client.request(
                    method.upper(), path, json=json, params=params, headers=headers,
                )
        except httpx.TimeoutException as e:
            metrics.incr("backend.errors", op=op, kind="timeout")
            log.warning("backend.timeout", op=op, method=method, path=path)
            raise GatewayTimeout() from e
        except httpx.RequestError as e:
            # also undecodable bodies and redirect loops
            metrics.incr("backend.errors", op=op, kind="network")
            log.error("backend.unreachable", op=op, method=method, path=path, error=str(e))
            raise NetworkError() from e
        finally:
            metrics.histogram("backend.latency_ms", (time.monotonic() - started) * 1000, op=op)

        metrics.incr("backend.responses", op=op, status=str(resp.status_code))
        if resp.is_error:
            message = extract_error_message(resp, fallback)
            log.warning(
                "backend.error_response",
                op=op,
                method=method,
                path=path,
                status=resp.status_code,
                message=message,
            )
            raise UpstreamError(message, status=resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            log.error("backend.invalid_json", op=op, path=path, status=resp.status_code)
            raise UpstreamError("Invalid response from backend", status=502) from e

    async def _send_idempotent(
        self,
        client: httpx.AsyncClient,
        path: str,
        headers: dict[str, str],
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self._config.max_retries + 1)),
            wait=wait_exponential(min=0.5, max=4),
            retry=retry_if_exception_type(httpx.ConnectError),
            reraise=True,
        ):
            with attempt:
                return await client.get(path, params=params, headers=headers)
        raise AssertionError("unreachable")


# ── Error extraction ─────────────────────────────────────────────────

def extract_error_message(resp: httpx.Response, fallback: str) -> str:
    """Pull a human-readable message out of a backend error response.

    Handles ``{"detail": "..."}``, FastAPI validation lists
    (``{"detail": [{"msg": ...}]}``), ``{"error": ...}``,
    ``{"message": ...}`` and JSON strings. Non-JSON bodies (HTML error
    pages, plain text) fall back to ``fallback``.
    """
    try:
        body = resp.json()
    except ValueError:
        return fallback
    return _message_from_body(body) or fallback


def _message_from_body(body: Any) -> str:
    if isinstance(body, str):
        return body.strip()[:_MAX_MESSAGE_LEN]
    if not isinstance(body, dict):
        return ""

    detail = body.get("detail")
    if isinstance(detail, str) and detail.strip():
        return detail.strip()[:_MAX_MESSAGE_LEN]
    if isinstance(detail, list):
        parts = []
        for item in detail:
            if isinstance(item, dict):
                msg = item.get("msg") or item.get("message")
                if msg:
                    parts.append(str(msg))
            elif item:
                parts.append(str(item))
        if parts:
            return "; ".join(parts)[:_MAX_MESSAGE_LEN]
    if isinstance(detail, dict):
        nested = _message_from_body(detail)
        if nested:
            return nested

    for key in ("error", "message"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()[:_MAX_MESSAGE_LEN]
    return ""
