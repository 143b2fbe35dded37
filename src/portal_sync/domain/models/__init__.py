"""Domain models for presence and messaging."""

from portal_sync.domain.models.app_lifecycle_state import AppLifecycleState
from portal_sync.domain.models.conversation_summary import ConversationSummary
from portal_sync.domain.models.message import Message, MessageStatus, Sender, can_transition
from portal_sync.domain.models.presence_record import PresenceRecord, PresenceStatus
from portal_sync.domain.models.results import DeleteResult, ErrorDetails
from portal_sync.domain.models.role import Role
from portal_sync.domain.models.store_document import (
    SERVER_TIMESTAMP,
    ChangeKind,
    Document,
    DocumentChange,
    ServerTimestamp,
    Snapshot,
    StoreQuery,
    from_unix_ms,
    to_unix_ms,
)
from portal_sync.domain.models.subscription import Subscription, SubscriptionRegistry

__all__ = [
    "SERVER_TIMESTAMP",
    "AppLifecycleState",
    "ChangeKind",
    "ConversationSummary",
    "DeleteResult",
    "Document",
    "DocumentChange",
    "ErrorDetails",
    "Message",
    "MessageStatus",
    "PresenceRecord",
    "PresenceStatus",
    "Role",
    "Sender",
    "ServerTimestamp",
    "Snapshot",
    "StoreQuery",
    "Subscription",
    "SubscriptionRegistry",
    "can_transition",
    "from_unix_ms",
    "to_unix_ms",
]
