"""Chat message domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from portal_sync.domain.models.role import Role


class MessageStatus(StrEnum):
    """Delivery state of a message as seen by the sending client."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.PENDING: frozenset({MessageStatus.DELIVERED, MessageStatus.FAILED}),
    MessageStatus.FAILED: frozenset({MessageStatus.PENDING}),
    MessageStatus.DELIVERED: frozenset(),
}


def can_transition(current: MessageStatus, target: MessageStatus) -> bool:
    """Check whether a status change is allowed."""
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class Sender:
    """Author of a message."""

    id: str
    role: Role
    name: str | None = None


@dataclass(frozen=True)
class Message:
    """A chat message, provisional until the store assigns its id and timestamp."""

    id: str
    conversation_id: str
    sender_id: str
    sender_role: Role
    content: str
    client_timestamp: datetime
    status: MessageStatus = MessageStatus.PENDING
    created_at: datetime | None = None  # server timestamp, set on delivery
    read: bool = False
    participants: frozenset[str] = field(default_factory=frozenset)
    sender_name: str | None = None
    client_id: str | None = None  # temporary id the message was created under

    @property
    def sender(self) -> Sender:
        """Sender of this message."""
        return Sender(id=self.sender_id, role=self.sender_role, name=self.sender_name)

    def to_document(self) -> dict[str, Any]:
        """Store-native document for persisting this message (without server fields)."""
        return {
            "conversationId": self.conversation_id,
            "senderId": self.sender_id,
            "senderRole": str(self.sender_role),
            "senderName": self.sender_name,
            "content": self.content,
            "clientTimestamp": self.client_timestamp,
            "participants": sorted(self.participants),
            "read": self.read,
            "clientId": self.client_id,
            "type": "text",
        }

    @classmethod
    def from_document(cls, message_id: str, data: dict[str, Any]) -> Message:
        """Build a delivered message from a stored document."""
        created_at = data.get("createdAt")
        client_timestamp = data.get("clientTimestamp") or created_at
        return cls(
            id=message_id,
            conversation_id=data.get("conversationId", ""),
            sender_id=data.get("senderId", ""),
            sender_role=Role(data.get("senderRole", Role.MEMBER)),
            content=data.get("content", ""),
            client_timestamp=client_timestamp,
            status=MessageStatus.DELIVERED,
            created_at=created_at,
            read=bool(data.get("read", False)),
            participants=frozenset(data.get("participants") or ()),
            sender_name=data.get("senderName"),
            client_id=data.get("clientId"),
        )
