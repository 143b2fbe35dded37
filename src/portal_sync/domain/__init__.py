"""Domain layer - presence and messaging models, errors and ports."""

from portal_sync.domain.errors import (
    AuthExpiredError,
    ConcurrentInitError,
    PortalSyncError,
    StoreReadError,
    StoreWriteError,
)
from portal_sync.domain.models import (
    ConversationSummary,
    Message,
    MessageStatus,
    PresenceRecord,
    PresenceStatus,
    Role,
)

__all__ = [
    "AuthExpiredError",
    "ConcurrentInitError",
    "ConversationSummary",
    "Message",
    "MessageStatus",
    "PortalSyncError",
    "PresenceRecord",
    "PresenceStatus",
    "Role",
    "StoreReadError",
    "StoreWriteError",
]
