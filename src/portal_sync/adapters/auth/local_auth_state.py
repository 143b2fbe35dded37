"""In-process auth session adapter."""

import inspect
import logging

from portal_sync.domain.models.subscription import Subscription
from portal_sync.domain.ports.auth_state import AuthListener, AuthState

logger = logging.getLogger(__name__)


class LocalAuthState(AuthState):
    """Auth session held in memory and driven by the host app's login flow."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id
        self._listeners: list[AuthListener] = []

    def current_user_id(self) -> str | None:
        """Id of the signed-in user, or None."""
        return self._user_id

    def subscribe(self, listener: AuthListener) -> Subscription:
        """Register a listener for sign-in/sign-out changes."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove, name="auth")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def sign_in(self, user_id: str) -> None:
        """Sign a user in and notify listeners."""
        await self._change(user_id)

    async def sign_out(self) -> None:
        """Sign the current user out and notify listeners."""
        await self._change(None)

    async def _change(self, user_id: str | None) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info(f"Auth state changed: user={user_id}")
        for listener in list(self._listeners):
            try:
                result = listener(user_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Auth listener failed: {e}", exc_info=True)
