"""Subscription handles and the registry that disposes them together."""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Subscription:
    """Cancel handle for a live listener registration.

    Cancelling is idempotent; the cancel callback runs at most once.
    """

    def __init__(self, on_cancel: Callable[[], None] | None = None, name: str = "") -> None:
        self._on_cancel = on_cancel
        self.name = name
        self._active = True

    @property
    def active(self) -> bool:
        """Whether the listener is still registered."""
        return self._active

    def cancel(self) -> None:
        """Unregister the listener."""
        if not self._active:
            return
        self._active = False
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()


class SubscriptionRegistry:
    """Keeps every live subscription of a component so they can be disposed at once."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return sum(1 for s in self._subscriptions if s.active)

    def add(self, subscription: Subscription) -> Subscription:
        """Track a subscription and return it."""
        self._subscriptions.append(subscription)
        return subscription

    def dispose(self) -> int:
        """Cancel all tracked subscriptions.

        Returns:
            Number of subscriptions that were still active.
        """
        disposed = 0
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            if not subscription.active:
                continue
            try:
                subscription.cancel()
            except Exception as e:
                logger.error(f"Failed to cancel subscription '{subscription.name}': {e}")
            disposed += 1
        return disposed
