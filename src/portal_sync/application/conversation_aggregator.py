"""Operator-side conversation list folded incrementally from the message stream."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from portal_sync.domain.contracts.conversation_aggregator import ConversationAggregatorProtocol
from portal_sync.domain.errors import AuthExpiredError, StoreWriteError
from portal_sync.domain.models.conversation_summary import ConversationSummary
from portal_sync.domain.models.role import Role
from portal_sync.domain.models.store_document import ChangeKind, Document, Snapshot, StoreQuery
from portal_sync.domain.models.subscription import Subscription

if TYPE_CHECKING:
    from portal_sync.application.presence_directory import PresenceDirectory
    from portal_sync.domain.ports import RemoteStatusStore

logger = logging.getLogger(__name__)

SummariesListener = Callable[[list[ConversationSummary]], None]


@dataclass(frozen=True)
class _MessageFact:
    """What the fold keeps of one message."""

    counterpart_id: str
    sender_id: str
    sender_name: str | None
    content: str
    sent_at: datetime | None
    read: bool
    arrival: int

    def order_key(self) -> tuple[float, int]:
        return (self.sent_at.timestamp() if self.sent_at else float("-inf"), self.arrival)


class ConversationAggregator(ConversationAggregatorProtocol):
    """Maintains one summary per counterpart the operator is chatting with.

    Every change only refolds the counterparts it touches. The latest message is
    the one with the highest server timestamp; equal timestamps resolve to the
    message the fold saw last.
    """

    def __init__(
        self,
        operator_id: str,
        store: RemoteStatusStore,
        directory: PresenceDirectory | None = None,
        messages_collection: str = "messages",
        counterpart_role: Role = Role.MEMBER,
    ) -> None:
        """Initialize the aggregator.

        Args:
            operator_id: Operator whose conversations are listed.
            store: Remote store holding messages.
            directory: Presence directory touched when a counterpart writes.
            messages_collection: Collection holding messages.
            counterpart_role: Role of the people the operator talks to.
        """
        self.operator_id = operator_id
        self._store = store
        self._directory = directory
        self._collection = messages_collection
        self._counterpart_role = Role(counterpart_role)

        self._facts: dict[str, _MessageFact] = {}
        self._summaries: dict[str, ConversationSummary] = {}
        self._arrivals = itertools.count()
        self._listeners: list[SummariesListener] = []
        self._subscription: Subscription | None = None
        self._initial_snapshot_seen = False
        self._touches: set[asyncio.Task] = set()

    @property
    def started(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        """Subscribe to every message the operator takes part in."""
        if self._subscription is not None:
            logger.debug(f"Conversation aggregator for {self.operator_id} already started")
            return
        self._initial_snapshot_seen = False
        query = StoreQuery(
            collection=self._collection, array_contains=("participants", self.operator_id)
        )
        self._subscription = self._store.subscribe(query, self._on_snapshot)
        logger.info(f"Conversation aggregator started for {self.operator_id}")

    def stop(self) -> None:
        """Unsubscribe from the message stream; summaries are kept."""
        if self._subscription is None:
            return
        self._subscription.cancel()
        self._subscription = None
        logger.info(f"Conversation aggregator stopped for {self.operator_id}")

    async def flush(self) -> None:
        """Wait for pending last-seen touches."""
        while self._touches:
            await asyncio.gather(*list(self._touches), return_exceptions=True)

    def summaries(self) -> list[ConversationSummary]:
        """Current summaries, most recent conversation first."""
        return sorted(
            self._summaries.values(),
            key=lambda s: self._latest_fact_key(s.counterpart_id),
            reverse=True,
        )

    def conversation_list(self, listener: SummariesListener) -> Subscription:
        """Push the sorted summaries now and after every change."""
        self._listeners.append(listener)
        listener(self.summaries())

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove, name=f"conversations:{self.operator_id}")

    def _counterpart_of(self, data: dict) -> str | None:
        sender_id = data.get("senderId")
        if sender_id and sender_id != self.operator_id:
            return sender_id
        others = sorted(p for p in (data.get("participants") or ()) if p != self.operator_id)
        return others[0] if others else None

    def _fact(self, document: Document, arrival: int) -> _MessageFact | None:
        data = document.data
        counterpart_id = self._counterpart_of(data)
        if counterpart_id is None:
            logger.debug(f"Message {document.id} has no counterpart, skipping")
            return None
        return _MessageFact(
            counterpart_id=counterpart_id,
            sender_id=data.get("senderId", ""),
            sender_name=data.get("senderName"),
            content=data.get("content", ""),
            sent_at=data.get("createdAt") or data.get("clientTimestamp"),
            read=bool(data.get("read", False)),
            arrival=arrival,
        )

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        if snapshot.error is not None:
            logger.warning(f"Conversation stream for {self.operator_id} failed: {snapshot.error}")
            return

        initial = not self._initial_snapshot_seen
        self._initial_snapshot_seen = True
        affected: set[str] = set()
        seen: dict[str, str | None] = {}

        for change in snapshot.changes:
            message_id = change.document.id
            previous = self._facts.get(message_id)
            if change.kind is ChangeKind.REMOVED:
                if previous is not None:
                    del self._facts[message_id]
                    affected.add(previous.counterpart_id)
                continue

            arrival = previous.arrival if previous is not None else next(self._arrivals)
            fact = self._fact(change.document, arrival)
            if fact is None:
                continue
            self._facts[message_id] = fact
            affected.add(fact.counterpart_id)
            if previous is not None and previous.counterpart_id != fact.counterpart_id:
                affected.add(previous.counterpart_id)
            if change.kind is ChangeKind.ADDED and fact.sender_id == fact.counterpart_id:
                seen[fact.counterpart_id] = fact.sender_name

        for counterpart_id in affected:
            self._refold(counterpart_id)
        if not initial:
            for counterpart_id, name in seen.items():
                self._touch_last_seen(counterpart_id, name)
        if affected:
            self._publish()

    def _refold(self, counterpart_id: str) -> None:
        facts = [f for f in self._facts.values() if f.counterpart_id == counterpart_id]
        if not facts:
            self._summaries.pop(counterpart_id, None)
            return
        latest = max(facts, key=_MessageFact.order_key)
        from_counterpart = [f for f in facts if f.sender_id == counterpart_id]
        named = [f for f in from_counterpart if f.sender_name]
        name = max(named, key=_MessageFact.order_key).sender_name if named else counterpart_id
        self._summaries[counterpart_id] = ConversationSummary(
            counterpart_id=counterpart_id,
            counterpart_name=name,
            last_message=latest.content,
            last_message_at=latest.sent_at,
            unread_count=sum(1 for f in from_counterpart if not f.read),
        )

    def _latest_fact_key(self, counterpart_id: str) -> tuple[float, int]:
        return max(
            f.order_key() for f in self._facts.values() if f.counterpart_id == counterpart_id
        )

    def _touch_last_seen(self, counterpart_id: str, name: str | None) -> None:
        if self._directory is None:
            return
        task = asyncio.create_task(
            self._touch(counterpart_id, name), name=f"touch-last-seen:{counterpart_id}"
        )
        self._touches.add(task)
        task.add_done_callback(self._touches.discard)

    async def _touch(self, counterpart_id: str, name: str | None) -> None:
        try:
            await self._directory.touch_last_seen(counterpart_id, self._counterpart_role, name)
        except (StoreWriteError, AuthExpiredError) as e:
            logger.warning(f"Failed to update last seen for {counterpart_id}: {e}")

    def _publish(self) -> None:
        summaries = self.summaries()
        for listener in list(self._listeners):
            try:
                listener(summaries)
            except Exception as e:
                logger.error(f"Conversation list listener failed: {e}", exc_info=True)
