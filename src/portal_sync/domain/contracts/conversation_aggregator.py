"""Conversation aggregator contract (protocol)."""

from collections.abc import Callable
from typing import Protocol

from portal_sync.domain.models.conversation_summary import ConversationSummary
from portal_sync.domain.models.subscription import Subscription


class ConversationAggregatorProtocol(Protocol):
    """Protocol for folding the message stream into conversation summaries."""

    def start(self) -> None:
        """Subscribe to the message stream."""
        ...

    def stop(self) -> None:
        """Unsubscribe from the message stream."""
        ...

    def summaries(self) -> list[ConversationSummary]:
        """Current summaries, most recent conversation first."""
        ...

    def conversation_list(
        self, listener: Callable[[list[ConversationSummary]], None]
    ) -> Subscription:
        """Push the sorted summaries now and after every change."""
        ...
