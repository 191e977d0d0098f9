"""Identity provider interface and an in-process session implementation."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from replica_sync.core.errors import NotAuthenticatedError
from replica_sync.core.types import Unsubscribe

logger = logging.getLogger(__name__)

AuthListener = Callable[[str | None, bool], None]


class IdentityProvider(ABC):
    """Supplies the stable user id and authentication signal."""

    @abstractmethod
    def current_user_id(self) -> str | None:
        """Stable identifier of the signed-in user, or None."""
        ...

    @abstractmethod
    def is_authenticated(self) -> bool:
        ...

    def require_user_id(self) -> str:
        """Return the signed-in user id or raise NotAuthenticatedError."""
        user_id = self.current_user_id()
        if not self.is_authenticated() or not user_id:
            raise NotAuthenticatedError()
        return user_id


class SessionIdentity(IdentityProvider):
    """
    Authentication state held in memory.

    Sign-in itself happens elsewhere; this class only records the outcome
    and tells listeners about it. Listeners receive ``(user_id, is_loading)``.

    Usage:
        identity = SessionIdentity(loading=True)
        ...
        identity.sign_in("user-123")   # from the auth callback
        user_id = await identity.wait_for_auth(timeout=10.0)
    """

    def __init__(
        self,
        user_id: str | None = None,
        *,
        token: str | None = None,
        loading: bool = False,
    ) -> None:
        self._user_id = user_id
        self._token = token
        self._loading = loading
        self._listeners: list[AuthListener] = []

    def current_user_id(self) -> str | None:
        return self._user_id

    def is_authenticated(self) -> bool:
        return bool(self._user_id)

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def token(self) -> str | None:
        """Opaque credential passed through to the remote store."""
        return self._token

    def sign_in(self, user_id: str, token: str | None = None) -> None:
        if not user_id:
            raise ValueError("user_id must be non-empty")
        self._user_id = user_id
        self._token = token
        self._loading = False
        logger.info("Signed in as %s", user_id)
        self._notify()

    def sign_out(self) -> None:
        self._user_id = None
        self._token = None
        self._loading = False
        logger.info("Signed out")
        self._notify()

    def set_loading(self, loading: bool = True) -> None:
        self._loading = loading
        self._notify()

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe:
        """Register a listener; it is called immediately with the current state."""
        self._listeners.append(listener)
        self._call(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_for_auth(self, timeout: float = 10.0) -> str | None:
        """
        Wait until authentication has settled.

        Args:
            timeout: Seconds to wait while the session is loading

        Returns:
            The signed-in user id, or None if settled as anonymous

        Raises:
            TimeoutError: If the session is still loading after *timeout*
        """
        if not self._loading:
            return self._user_id

        settled = asyncio.Event()

        def on_change(_user_id: str | None, is_loading: bool) -> None:
            if not is_loading:
                settled.set()

        unsubscribe = self.on_auth_state_change(on_change)
        try:
            await asyncio.wait_for(settled.wait(), timeout=timeout)
        except TimeoutError:
            raise TimeoutError("Auth initialization timeout") from None
        finally:
            unsubscribe()
        return self._user_id

    def _notify(self) -> None:
        for listener in list(self._listeners):
            self._call(listener)

    def _call(self, listener: AuthListener) -> None:
        try:
            listener(self._user_id, self._loading)
        except Exception as e:
            logger.warning("Auth state listener failed: %s", e)
