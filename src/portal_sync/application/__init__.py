"""Application layer - presence tracking, message delivery and conversation lists."""

from portal_sync.application.conversation_aggregator import ConversationAggregator
from portal_sync.application.message_log import MessageLog
from portal_sync.application.message_pipeline import MessageDeliveryPipeline
from portal_sync.application.presence_directory import PresenceDirectory
from portal_sync.application.presence_tracker import HeartbeatPresenceTracker
from portal_sync.application.read_receipt_batcher import ReadReceiptBatcher
from portal_sync.application.session_context import SessionContext, SessionSettings

__all__ = [
    "ConversationAggregator",
    "HeartbeatPresenceTracker",
    "MessageDeliveryPipeline",
    "MessageLog",
    "PresenceDirectory",
    "ReadReceiptBatcher",
    "SessionContext",
    "SessionSettings",
]
