"""Session token persistence.

The session token is stored as a single cookie record: name, value and
expiry. The record is what the dashboard's route guard looks for, so
callers that talk to the dashboard attach ``cookie()`` to their requests.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from tradeboard.config import SessionConfig
from tradeboard.observability.logger import get_logger

log = get_logger(__name__)

SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class SessionCookie:
    name: str
    value: str
    expires_at: float  # unix seconds

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


class SessionStore:
    """Base store. Subclasses implement ``_load``, ``_save`` and ``_delete``."""

    def __init__(self, cookie_name: str = "access_token", expires_days: int = 7):
        self.cookie_name = cookie_name
        self.expires_days = expires_days

    def get(self) -> str | None:
        """Return the stored token, or None when absent or expired."""
        record = self._load()
        if record is None:
            return None
        if record.is_expired or record.name != self.cookie_name:
            self._delete()
            return None
        return record.value

    def set(self, token: str, expires_days: int | None = None) -> None:
        days = self.expires_days if expires_days is None else expires_days
        self._save(SessionCookie(
            name=self.cookie_name,
            value=token,
            expires_at=time.time() + days * SECONDS_PER_DAY,
        ))

    def clear(self) -> None:
        self._delete()

    def cookie(self) -> tuple[str, str] | None:
        """``(name, value)`` of the live session cookie, if any."""
        token = self.get()
        return (self.cookie_name, token) if token else None

    # ── backend hooks ────────────────────────────────────────────

    def _load(self) -> SessionCookie | None:
        raise NotImplementedError

    def _save(self, record: SessionCookie) -> None:
        raise NotImplementedError

    def _delete(self) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """In-process store; nothing survives the process."""

    def __init__(self, cookie_name: str = "access_token", expires_days: int = 7):
        super().__init__(cookie_name, expires_days)
        self._record: SessionCookie | None = None

    def _load(self) -> SessionCookie | None:
        return self._record

    def _save(self, record: SessionCookie) -> None:
        self._record = record

    def _delete(self) -> None:
        self._record = None


class FileSessionStore(SessionStore):
    """JSON file store, readable only by the owner."""

    def __init__(
        self,
        path: str | Path,
        cookie_name: str = "access_token",
        expires_days: int = 7,
    ):
        super().__init__(cookie_name, expires_days)
        self._path = Path(path).expanduser()

    @classmethod
    def from_config(cls, config: SessionConfig) -> FileSessionStore:
        return cls(config.store_path, config.cookie_name, config.expires_days)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> SessionCookie | None:
        if not self._path.exists():
            return None
        try:
            raw = json.loads(self._path.read_text())
            return SessionCookie(
                name=str(raw["name"]),
                value=str(raw["value"]),
                expires_at=float(raw["expires_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning("session_store.unreadable", path=str(self._path), error=str(e))
            return None

    def _save(self, record: SessionCookie) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(asdict(record), f)
        os.replace(tmp, self._path)

    def _delete(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
