"""Markdown documentation served from the local docs directory."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from flask import Blueprint, jsonify

from tradeboard.dashboard.common import app_config
from tradeboard.errors import GatewayError

bp = Blueprint("docs", __name__)


def _title(stem: str) -> str:
    words = stem.replace("_", " ").replace("-", " ").split(" ")
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def load_docs(docs_dir: str | Path) -> list[dict[str, Any]]:
    """Read every ``*.md`` file in ``docs_dir``, sorted by title."""
    docs = []
    for path in sorted(Path(docs_dir).glob("*.md")):
        stem = path.name[: -len(".md")]
        docs.append({
            "id": stem.lower().replace("_", "-"),
            "title": _title(stem),
            "filename": path.name,
            "content": path.read_text(encoding="utf-8"),
        })
    docs.sort(key=lambda d: d["title"].casefold())
    return docs


@bp.route("/api/docs")
def docs_index() -> Any:
    docs_dir = Path(app_config().docs.docs_dir)
    if not docs_dir.is_dir():
        raise GatewayError("Documentation directory not found", status=404)
    try:
        return jsonify(load_docs(docs_dir))
    except OSError as e:
        raise GatewayError("Failed to load documentation files") from e
