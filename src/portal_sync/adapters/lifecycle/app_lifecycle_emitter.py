"""App lifecycle event source adapter."""

import inspect
import logging

from portal_sync.domain.models.app_lifecycle_state import AppLifecycleState
from portal_sync.domain.models.subscription import Subscription
from portal_sync.domain.ports.lifecycle_source import LifecycleListener, LifecycleSource

logger = logging.getLogger(__name__)


class AppLifecycleEmitter(LifecycleSource):
    """Fans out lifecycle transitions reported by the host app."""

    def __init__(self) -> None:
        self._listeners: list[LifecycleListener] = []
        self.state = AppLifecycleState.ACTIVE

    def subscribe(self, listener: LifecycleListener) -> Subscription:
        """Register a listener for lifecycle transitions."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove, name="lifecycle")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, state: AppLifecycleState | str) -> None:
        """Report a transition to every listener."""
        state = AppLifecycleState(state)
        self.state = state
        logger.debug(f"App lifecycle changed to {state}")
        for listener in list(self._listeners):
            try:
                result = listener(state)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Lifecycle listener failed: {e}", exc_info=True)
