"""Clears unread counts once per conversation open."""

import logging

from portal_sync.domain.contracts.message_pipeline import MessagePipelineProtocol
from portal_sync.domain.contracts.read_receipt_batcher import ReadReceiptBatcherProtocol

logger = logging.getLogger(__name__)


class ReadReceiptBatcher(ReadReceiptBatcherProtocol):
    """Marks a conversation read when it is opened, at most once per open."""

    def __init__(self, pipeline: MessagePipelineProtocol) -> None:
        self._pipeline = pipeline
        self._open: dict[str, str] = {}

    def is_open(self, conversation_id: str) -> bool:
        return conversation_id in self._open

    async def open_conversation(self, conversation_id: str, reader_id: str) -> int:
        """Mark the conversation read for ``reader_id``.

        Returns:
            Number of messages marked read; 0 if the conversation is already open.
        """
        if conversation_id in self._open:
            logger.debug(f"Conversation {conversation_id} already open, not marking again")
            return 0
        self._open[conversation_id] = reader_id
        return await self._pipeline.mark_conversation_read(conversation_id, reader_id)

    def close_conversation(self, conversation_id: str) -> None:
        """End the current open so the next one marks read again."""
        self._open.pop(conversation_id, None)
