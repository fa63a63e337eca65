"""Session manager: the client-side source of truth for authentication.

State machine::

    UNINITIALIZED -> LOADING -> AUTHENTICATED | UNAUTHENTICATED

The token lives in the SessionStore; the resolved user lives only in
memory. Every state change is committed after the network call it
depends on has completed. Overlapping calls of the same kind are
resolved by generation: a newer ``login`` (or any ``logout``) makes an
older, still-pending ``login`` drop its result instead of committing it.
A pending ``refresh_token`` is dropped the same way by a newer refresh
and by any login, logout or re-initialization.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from tradeboard.errors import GatewayError
from tradeboard.gateway.auth import AuthGateway
from tradeboard.gateway.models import User
from tradeboard.observability.logger import get_logger
from tradeboard.session.store import SessionStore

log = get_logger(__name__)


class AuthStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class AuthState:
    status: AuthStatus = AuthStatus.UNINITIALIZED
    user: User | None = None
    access_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.status in (AuthStatus.UNINITIALIZED, AuthStatus.LOADING)


_SIGNED_OUT = AuthState(status=AuthStatus.UNAUTHENTICATED)

Listener = Callable[[AuthState], None]


class SessionManager:
    """Drives login, logout and refresh; owns the session store."""

    def __init__(self, gateway: AuthGateway, store: SessionStore):
        self._gateway = gateway
        self._store = store
        self._state = AuthState()
        self._listeners: list[Listener] = []
        self._login_gen = 0
        self._refresh_gen = 0

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> User | None:
        return self._state.user

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, state: AuthState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    # ── Lifecycle ────────────────────────────────────────────────

    async def initialize(self) -> AuthState:
        """Restore the session from the store, validating it with the backend."""
        self._login_gen += 1
        self._refresh_gen += 1
        gen = self._login_gen
        self._commit(AuthState(status=AuthStatus.LOADING))

        token = self._store.get()
        if not token:
            self._commit(_SIGNED_OUT)
            return self._state

        try:
            user = await self._gateway.get_current_user(token)
        except GatewayError as e:
            if gen == self._login_gen:
                log.info("session.restore_failed", status=e.status, error=e.message)
                self._store.clear()
                self._commit(_SIGNED_OUT)
            return self._state

        if gen == self._login_gen:
            self._commit(AuthState(status=AuthStatus.AUTHENTICATED, user=user, access_token=token))
            log.info("session.restored", user_id=str(user.id))
        return self._state

    async def login(self, token: str) -> User:
        """Persist ``token`` and resolve its user.

        If the backend rejects the token the stored copy is removed again
        before the error propagates, so the next start does not retry a
        token already known to be bad.
        """
        self._login_gen += 1
        self._refresh_gen += 1
        gen = self._login_gen
        self._store.set(token)

        try:
            user = await self._gateway.get_current_user(token)
        except GatewayError:
            if gen == self._login_gen:
                self._store.clear()
                self._commit(_SIGNED_OUT)
            raise

        if gen == self._login_gen:
            self._commit(AuthState(status=AuthStatus.AUTHENTICATED, user=user, access_token=token))
            log.info("session.logged_in", user_id=str(user.id))
        else:
            log.info("session.login_superseded", user_id=str(user.id))
        return user

    async def logout(self) -> None:
        """Best-effort backend logout; local state is always cleared."""
        self._login_gen += 1
        self._refresh_gen += 1
        token = self._store.get() or self._state.access_token
        try:
            await self._gateway.logout(token)
        finally:
            self._store.clear()
            self._commit(_SIGNED_OUT)
            log.info("session.logged_out")

    async def refresh_token(self) -> bool:
        """Swap the stored token for a fresh one. Does not change status."""
        token = self._store.get()
        if not token:
            return False
        self._refresh_gen += 1
        gen = self._refresh_gen
        try:
            new_token = await self._gateway.refresh_token(token)
        except GatewayError as e:
            log.warning("session.refresh_failed", status=e.status, error=e.message)
            return False

        # a login, logout or newer refresh since the call started wins
        if gen != self._refresh_gen or self._store.get() != token:
            log.info("session.refresh_superseded")
            return False
        self._store.set(new_token)
        self._commit(replace(self._state, access_token=new_token))
        return True
