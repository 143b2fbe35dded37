"""Presence record domain models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from portal_sync.domain.models.role import Role


class PresenceRecord(BaseModel):
    """Per-(owner, role) online status document refreshed by heartbeats."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    role: Role
    is_online: bool
    last_active_at: datetime | None = None
    updated_at: datetime | None = None
    display_name: str | None = None
    last_seen_at: datetime | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "PresenceRecord":
        """Build a record from its store-native (camelCase) document."""
        return cls(
            owner_id=data["ownerId"],
            role=Role(data["role"]),
            is_online=bool(data.get("isOnline", False)),
            last_active_at=data.get("lastActiveAt"),
            updated_at=data.get("updatedAt"),
            display_name=data.get("displayName"),
            last_seen_at=data.get("lastSeenAt"),
        )

    def latest_activity(self) -> datetime | None:
        """Most recent of the heartbeat time and the touched last-seen time."""
        candidates = [t for t in (self.last_active_at, self.last_seen_at) if t is not None]
        return max(candidates) if candidates else None


class PresenceStatus(BaseModel):
    """What the UI renders for one owner's presence.

    ``known`` is False when the record is missing or could not be read; such an
    owner renders as unknown/offline.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str
    role: Role
    is_online: bool = False
    last_seen: datetime | None = None
    display_name: str | None = None
    known: bool = True

    @classmethod
    def unknown(cls, owner_id: str, role: Role) -> "PresenceStatus":
        """Status for an owner whose record is unavailable."""
        return cls(owner_id=owner_id, role=role, is_online=False, known=False)
