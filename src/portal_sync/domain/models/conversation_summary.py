"""Conversation summary domain model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ConversationSummary(BaseModel):
    """Derived, non-authoritative view of one counterpart's conversation."""

    model_config = ConfigDict(frozen=True)

    counterpart_id: str
    counterpart_name: str
    last_message: str
    last_message_at: datetime | None = None
    unread_count: int = 0
