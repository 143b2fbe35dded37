"""Contracts (protocols) exposed by the engine to the UI layer."""

from portal_sync.domain.contracts.conversation_aggregator import ConversationAggregatorProtocol
from portal_sync.domain.contracts.message_pipeline import MessagePipelineProtocol
from portal_sync.domain.contracts.presence_tracker import PresenceTrackerProtocol
from portal_sync.domain.contracts.read_receipt_batcher import ReadReceiptBatcherProtocol

__all__ = [
    "ConversationAggregatorProtocol",
    "MessagePipelineProtocol",
    "PresenceTrackerProtocol",
    "ReadReceiptBatcherProtocol",
]
