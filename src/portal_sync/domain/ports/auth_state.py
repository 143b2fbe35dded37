"""Auth state port."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from portal_sync.domain.models.subscription import Subscription

AuthListener = Callable[[str | None], Awaitable[None] | None]


class AuthState(Protocol):
    """Port for the authenticated session."""

    def current_user_id(self) -> str | None:
        """Id of the signed-in user, or None."""
        ...

    def subscribe(self, listener: AuthListener) -> Subscription:
        """Call ``listener`` with the user id (or None) whenever it changes."""
        ...
