"""Read receipt batcher contract (protocol)."""

from typing import Protocol


class ReadReceiptBatcherProtocol(Protocol):
    """Protocol for clearing unread counts when a conversation is opened."""

    async def open_conversation(self, conversation_id: str, reader_id: str) -> int:
        """Mark the conversation read once for this open.

        Returns:
            Number of messages marked read.
        """
        ...

    def close_conversation(self, conversation_id: str) -> None:
        """End the current open of the conversation."""
        ...
