"""App lifecycle state domain model."""

from enum import StrEnum


class AppLifecycleState(StrEnum):
    """Foreground/background state reported by the host app."""

    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"

    @property
    def is_foreground(self) -> bool:
        """Whether the app is visible and interactive."""
        return self is AppLifecycleState.ACTIVE
