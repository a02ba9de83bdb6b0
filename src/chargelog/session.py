"""Session tracking: identity changes, profile bootstrap and auth actions."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol

from chargelog._constants import AUTH_ERROR_MESSAGES, DEFAULT_AUTH_ERROR_MESSAGE
from chargelog.exceptions import ChargelogError, RecordNotFoundError
from chargelog.models.profile import Identity, UserProfile
from chargelog.store import RecordKind, RemoteStore

_logger = logging.getLogger(__name__)


def auth_error_message(code: str) -> str:
    """Map a provider error code (``auth/...``) to a user-facing message."""
    return AUTH_ERROR_MESSAGES.get(code, DEFAULT_AUTH_ERROR_MESSAGE)


class AuthProvider(Protocol):
    """Authentication collaborator.

    ``add_listener`` callbacks receive the new identity, or ``None`` on
    sign-out, and return an unsubscribe callable.  Failing operations
    raise :class:`~chargelog.exceptions.AuthProviderError`.
    """

    @property
    def current_identity(self) -> Identity | None:
        ...

    def add_listener(self, callback: Callable[[Identity | None], None]) -> Callable[[], None]:
        ...

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        ...

    async def sign_in_with_idp(self, provider_id: str, id_token: str) -> Identity:
        ...

    async def sign_up(self, email: str, password: str, display_name: str | None = None) -> Identity:
        ...

    async def sign_out(self) -> None:
        ...


@dataclass(frozen=True)
class SessionChange:
    """A sign-in (``identity`` set) or sign-out (``identity is None``) event.

    ``profile_error`` carries a non-fatal profile bootstrap failure; the
    user is signed in regardless.
    """

    identity: Identity | None
    profile_error: ChargelogError | None = None

    @property
    def signed_in(self) -> bool:
        return self.identity is not None


SessionHandler = Callable[[SessionChange], Awaitable[None] | None]


class SessionManager:
    """Relay auth state changes to handlers in the order they happen.

    On the first observed sign-in of each identity a profile document is
    created if none exists yet; an existing profile is never overwritten.
    """

    def __init__(self, provider: AuthProvider, store: RemoteStore) -> None:
        self._provider = provider
        self._store = store
        self._handlers: list[SessionHandler] = []
        self._profiled: set[str] = set()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()
        self._unsubscribe_provider: Callable[[], None] | None = provider.add_listener(self._on_provider_change)

    @property
    def identity(self) -> Identity | None:
        return self._provider.current_identity

    def close(self) -> None:
        """Detach from the provider; pending dispatches still complete."""
        if self._unsubscribe_provider is not None:
            self._unsubscribe_provider()
            self._unsubscribe_provider = None
        self._handlers.clear()

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on_session_change(self, handler: SessionHandler) -> Callable[[], None]:
        """Register *handler*; it runs at once if a session already exists."""
        self._handlers.append(handler)
        current = self._provider.current_identity
        if current is not None:
            self._schedule(current, only=handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def wait_idle(self) -> None:
        """Wait until every scheduled dispatch has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_provider_change(self, identity: Identity | None) -> None:
        self._schedule(identity)

    def _track(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _schedule(self, identity: Identity | None, *, only: SessionHandler | None = None) -> None:
        self._track(self._dispatch(identity, only))

    async def _dispatch(self, identity: Identity | None, only: SessionHandler | None) -> None:
        # Handlers are started in event order under the lock, but their
        # awaitables run as separate tasks: a sign-out reaches the handlers
        # while the load started by the previous sign-in is still pending.
        async with self._lock:
            profile_error: ChargelogError | None = None
            if identity is not None and identity.uid not in self._profiled:
                profile_error = await self._ensure_profile(identity)
            change = SessionChange(identity=identity, profile_error=profile_error)
            if identity is None:
                _logger.info("Session ended")
            else:
                _logger.info("Session active for uid=%s", identity.uid)

            handlers = [only] if only is not None else list(self._handlers)
            for handler in handlers:
                try:
                    result = handler(change)
                except Exception:
                    _logger.exception("Session change handler failed")
                    continue
                if inspect.isawaitable(result):
                    self._track(self._run_handler(result))

    async def _run_handler(self, result: Awaitable[None]) -> None:
        try:
            await result
        except Exception:
            _logger.exception("Session change handler failed")

    async def _ensure_profile(self, identity: Identity) -> ChargelogError | None:
        """Create the profile document if absent; return a failure instead of raising."""
        try:
            await self._store.read(identity.uid, RecordKind.PROFILE, identity.uid)
        except RecordNotFoundError:
            profile = UserProfile.for_identity(identity)
            try:
                await self._store.create(identity.uid, RecordKind.PROFILE, profile.to_document())
            except ChargelogError as exc:
                _logger.warning("Could not create profile for uid=%s: %s", identity.uid, exc)
                return exc
            _logger.info("Created profile for uid=%s", identity.uid)
        except ChargelogError as exc:
            _logger.warning("Could not check profile for uid=%s: %s", identity.uid, exc)
            return exc
        self._profiled.add(identity.uid)
        return None

    # ------------------------------------------------------------------
    # Auth actions
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        return await self._provider.sign_in_with_password(email, password)

    async def sign_in_with_idp(self, provider_id: str, id_token: str) -> Identity:
        """Federated sign-in with a token obtained from the identity provider."""
        return await self._provider.sign_in_with_idp(provider_id, id_token)

    async def sign_up(self, email: str, password: str, display_name: str | None = None) -> Identity:
        """Create an account; the provider stores *display_name* before signing in."""
        return await self._provider.sign_up(email, password, display_name)

    async def sign_out(self) -> None:
        await self._provider.sign_out()
