"""Simple in-process metrics collection.

Counts proxied requests by route and upstream status, and keeps a bounded
window of latency samples per series. Rendered as Prometheus text by the
dashboard's /metrics endpoint.

Series are keyed by name plus sorted tags, e.g.
``backend.responses{op="auth.me",status="401"}``.
"""

from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
from typing import Any

_WINDOW = 2_000  # latency samples kept per series
_QUANTILES = (0.5, 0.95, 0.99)


def _series(name: str, tags: dict[str, str]) -> str:
    if not tags:
        return name
    labels = ",".join(f'{k}="{v}"' for k, v in sorted(tags.items()))
    return f"{name}{{{labels}}}"


def _quantile(ordered: list[float], q: float) -> float:
    """Nearest-rank quantile of pre-sorted samples."""
    if not ordered:
        return 0.0
    rank = min(len(ordered) - 1, max(0, round(q * (len(ordered) - 1))))
    return ordered[rank]


def _summary(samples: deque[float]) -> dict[str, Any]:
    ordered = sorted(samples)
    out: dict[str, Any] = {"count": len(ordered), "sum": round(sum(ordered), 3)}
    for q in _QUANTILES:
        out[f"p{int(q * 100)}"] = round(_quantile(ordered, q), 3)
    return out


class MetricsCollector:
    """Thread-safe in-process metrics collector."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, float] = defaultdict(float)
        self._histograms: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=_WINDOW))

    def incr(self, name: str, value: float = 1.0, **tags: str) -> None:
        with self._lock:
            self._counters[_series(name, tags)] += value

    def histogram(self, name: str, value: float, **tags: str) -> None:
        with self._lock:
            self._histograms[_series(name, tags)].append(value)

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable view: counters and per-series latency summaries."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {k: _summary(v) for k, v in self._histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


def _split(series: str) -> tuple[str, str]:
    # label values keep their punctuation; only the metric name is sanitized
    base, _, labels = series.partition("{")
    return base.replace(".", "_").replace("-", "_"), ("{" + labels if labels else "")


def render_prometheus(snap: dict[str, Any], prefix: str = "tradeboard") -> str:
    """Render a snapshot in Prometheus text exposition format."""
    lines: list[str] = []
    for series, value in sorted(snap.get("counters", {}).items()):
        base, labels = _split(series)
        lines.append(f"{prefix}_{base}{labels} {value}")
    for series, stats in sorted(snap.get("histograms", {}).items()):
        base, labels = _split(series)
        lines.append(f"{prefix}_{base}_count{labels} {stats['count']}")
        lines.append(f"{prefix}_{base}_sum{labels} {stats['sum']}")
        for q in _QUANTILES:
            key = f"p{int(q * 100)}"
            lines.append(f"{prefix}_{base}_{key}{labels} {stats[key]}")
    return "\n".join(lines) + "\n"


# Global singleton
metrics = MetricsCollector()
