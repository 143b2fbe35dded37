"""Error taxonomy for the synchronization engine.

Presence failures degrade to staleness and message failures degrade to a visible
``failed`` status, so these errors are raised by store adapters and handled inside
the engine rather than propagated to the UI layer.
"""


class PortalSyncError(Exception):
    """Base class for all engine errors."""


class StoreWriteError(PortalSyncError):
    """A write against the remote store failed (network, permission, timeout)."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class StoreReadError(PortalSyncError):
    """A read or subscription against the remote store failed."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class AuthExpiredError(PortalSyncError):
    """The authenticated session is gone; the owning session must be cleaned up."""


class ConcurrentInitError(PortalSyncError):
    """A second presence tracker was requested for an (owner, role) already online."""

    def __init__(self, owner_id: str, role: str) -> None:
        super().__init__(f"Presence tracker already active for {role}:{owner_id}")
        self.owner_id = owner_id
        self.role = role
