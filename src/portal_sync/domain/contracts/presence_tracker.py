"""Presence tracker contract (protocol)."""

from datetime import datetime
from typing import Protocol

from portal_sync.domain.models.app_lifecycle_state import AppLifecycleState


class PresenceTrackerProtocol(Protocol):
    """Protocol for heartbeat-driven presence of one (owner, role)."""

    @property
    def is_online(self) -> bool:
        """Whether this tracker currently considers its owner online."""
        ...

    @property
    def last_active_at(self) -> datetime | None:
        """Time of the last successful presence write."""
        ...

    async def initialize(self) -> bool:
        """Go online and start heartbeats.

        Returns:
            True if this call brought the owner online, False if it was a no-op.
        """
        ...

    async def on_app_lifecycle_change(self, state: AppLifecycleState) -> None:
        """React to the app moving between foreground and background."""
        ...

    async def force_offline(self) -> None:
        """Stop all timers and mark the owner offline, best effort."""
        ...

    async def cleanup(self) -> None:
        """Go offline and release every timer and listener."""
        ...
