"""Message delivery pipeline contract (protocol)."""

from typing import Protocol

from portal_sync.domain.models.message import Message, Sender
from portal_sync.domain.models.results import DeleteResult


class MessagePipelineProtocol(Protocol):
    """Protocol for optimistic message delivery."""

    def send(
        self,
        conversation_id: str,
        content: str,
        sender: Sender,
        participants: frozenset[str] | set[str] | None = None,
    ) -> Message | None:
        """Append a pending message locally and persist it in the background.

        Returns:
            The provisional message, already visible in the local sequence, or
            None if the content is blank.
        """
        ...

    def retry(self, message_id: str) -> bool:
        """Re-send a failed message.

        Returns:
            True if a retry was started, False if the message is not failed.
        """
        ...

    async def delete(self, message_id: str) -> DeleteResult:
        """Remove a message locally, then remotely."""
        ...

    async def mark_conversation_read(self, conversation_id: str, reader_id: str) -> int:
        """Mark every unread message addressed to ``reader_id`` as read in one batch.

        Returns:
            Number of messages marked read.
        """
        ...
