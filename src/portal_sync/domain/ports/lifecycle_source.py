"""App lifecycle source port."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from portal_sync.domain.models.app_lifecycle_state import AppLifecycleState
from portal_sync.domain.models.subscription import Subscription

LifecycleListener = Callable[[AppLifecycleState], Awaitable[None] | None]


class LifecycleSource(Protocol):
    """Port for foreground/background transitions of the host app."""

    def subscribe(self, listener: LifecycleListener) -> Subscription:
        """Call ``listener`` on every lifecycle transition."""
        ...
