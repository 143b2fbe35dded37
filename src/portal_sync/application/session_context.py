"""Per-login session that owns every presence and messaging component."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from portal_sync.application.conversation_aggregator import (
    ConversationAggregator,
    SummariesListener,
)
from portal_sync.application.message_log import MessagesListener
from portal_sync.application.message_pipeline import MessageDeliveryPipeline
from portal_sync.application.presence_directory import PresenceDirectory, PresenceListener
from portal_sync.application.presence_tracker import HeartbeatPresenceTracker
from portal_sync.application.read_receipt_batcher import ReadReceiptBatcher
from portal_sync.domain.errors import ConcurrentInitError
from portal_sync.domain.models.role import Role
from portal_sync.domain.models.subscription import Subscription, SubscriptionRegistry

if TYPE_CHECKING:
    from portal_sync.domain.models.app_lifecycle_state import AppLifecycleState
    from portal_sync.domain.models.message import Message, Sender
    from portal_sync.domain.models.results import DeleteResult
    from portal_sync.domain.ports import AuthState, LifecycleSource, RemoteStatusStore, Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSettings:
    """Tunables of a session, usually taken from the application config."""

    heartbeat_interval_seconds: float = 30
    background_timeout_seconds: float = 3600
    presence_stale_after_seconds: float = 120
    send_timeout_seconds: float = 15
    operator_status_collection: str = "adminStatus"
    member_status_collection: str = "studentStatus"
    messages_collection: str = "messages"
    remove_member_record_on_offline: bool = False
    display_timezone: str = "Asia/Manila"

    def status_collection(self, role: Role) -> str:
        """Presence collection for a role."""
        if Role(role) is Role.OPERATOR:
            return self.operator_status_collection
        return self.member_status_collection


class SessionContext:
    """Everything one logged-in client runs, disposed together on logout.

    At most one presence tracker exists per (owner, role); initializing the same
    pair again returns the existing tracker. Operator sessions also keep the
    conversation list up to date.
    """

    def __init__(
        self,
        store: RemoteStatusStore,
        auth: AuthState,
        scheduler: Scheduler,
        settings: SessionSettings | None = None,
        lifecycle: LifecycleSource | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            store: Remote store for presence records and messages.
            auth: Auth session the trackers are bound to.
            scheduler: Clock and timers.
            settings: Session tunables; defaults if omitted.
            lifecycle: Optional source of app lifecycle transitions.
        """
        self._store = store
        self._auth = auth
        self._scheduler = scheduler
        self.settings = settings or SessionSettings()
        self._lifecycle = lifecycle

        self._trackers: dict[tuple[str, Role], HeartbeatPresenceTracker] = {}
        self._subscriptions = SubscriptionRegistry()
        self.directory = PresenceDirectory(
            store,
            scheduler,
            collections={
                Role.OPERATOR: self.settings.operator_status_collection,
                Role.MEMBER: self.settings.member_status_collection,
            },
            stale_after_seconds=self.settings.presence_stale_after_seconds,
            display_timezone=self.settings.display_timezone,
        )
        self.pipeline = MessageDeliveryPipeline(
            store,
            scheduler,
            messages_collection=self.settings.messages_collection,
            send_timeout_seconds=self.settings.send_timeout_seconds,
        )
        self.batcher = ReadReceiptBatcher(self.pipeline)
        self.aggregator: ConversationAggregator | None = None

    def tracker(self, owner_id: str, role: Role) -> HeartbeatPresenceTracker | None:
        """Tracker registered for (owner, role), if any."""
        return self._trackers.get((owner_id, Role(role)))

    def _register_tracker(
        self, owner_id: str, role: Role, display_name: str | None
    ) -> HeartbeatPresenceTracker:
        key = (owner_id, role)
        if key in self._trackers:
            raise ConcurrentInitError(owner_id, str(role))
        tracker = HeartbeatPresenceTracker(
            owner_id=owner_id,
            role=role,
            store=self._store,
            auth=self._auth,
            scheduler=self._scheduler,
            status_collection=self.settings.status_collection(role),
            lifecycle=self._lifecycle,
            display_name=display_name,
            heartbeat_interval_seconds=self.settings.heartbeat_interval_seconds,
            background_timeout_seconds=self.settings.background_timeout_seconds,
            remove_record_on_offline=(
                role is Role.MEMBER and self.settings.remove_member_record_on_offline
            ),
        )
        self._trackers[key] = tracker
        return tracker

    async def initialize(
        self, owner_id: str, role: Role, display_name: str | None = None
    ) -> HeartbeatPresenceTracker:
        """Start presence for (owner, role) and, for operators, the conversation list.

        Returns:
            The tracker for (owner, role), new or existing.
        """
        role = Role(role)
        try:
            tracker = self._register_tracker(owner_id, role, display_name)
        except ConcurrentInitError as e:
            logger.debug(f"{e}, reusing the existing tracker")
            tracker = self._trackers[(owner_id, role)]

        await tracker.initialize()

        if role is Role.OPERATOR and self.aggregator is None:
            self.aggregator = ConversationAggregator(
                operator_id=owner_id,
                store=self._store,
                directory=self.directory,
                messages_collection=self.settings.messages_collection,
            )
            self.aggregator.start()
        return tracker

    async def on_app_lifecycle_change(self, state: AppLifecycleState) -> None:
        """Forward a lifecycle transition to every tracker not subscribed to one."""
        if self._lifecycle is not None:
            # Trackers already receive transitions from the lifecycle source
            return
        for tracker in list(self._trackers.values()):
            await tracker.on_app_lifecycle_change(state)

    def send(
        self,
        conversation_id: str,
        content: str,
        sender: Sender,
        participants: frozenset[str] | set[str] | None = None,
    ) -> Message | None:
        """Send a message optimistically; blank content is ignored."""
        return self.pipeline.send(conversation_id, content, sender, participants)

    def retry(self, message_id: str) -> bool:
        """Retry a failed message."""
        return self.pipeline.retry(message_id)

    async def delete(self, message_id: str) -> DeleteResult:
        """Delete a message locally and remotely."""
        return await self.pipeline.delete(message_id)

    async def mark_conversation_read(self, conversation_id: str, reader_id: str) -> int:
        """Mark a conversation read for ``reader_id``."""
        return await self.pipeline.mark_conversation_read(conversation_id, reader_id)

    async def open_conversation(self, conversation_id: str, reader_id: str) -> int:
        """Open a conversation, marking it read once."""
        return await self.batcher.open_conversation(conversation_id, reader_id)

    def close_conversation(self, conversation_id: str) -> None:
        """Close a conversation opened with :meth:`open_conversation`."""
        self.batcher.close_conversation(conversation_id)

    def messages_of(self, conversation_id: str, listener: MessagesListener) -> Subscription:
        """Observe a conversation's ordered messages."""
        return self._subscriptions.add(self.pipeline.messages_of(conversation_id, listener))

    def presence_of(self, owner_id: str, role: Role, listener: PresenceListener) -> Subscription:
        """Observe an owner's presence."""
        return self._subscriptions.add(self.directory.presence_of(owner_id, role, listener))

    def conversation_list(self, listener: SummariesListener) -> Subscription:
        """Observe the operator's conversation summaries.

        Member sessions have no conversation list; the listener gets one empty push.
        """
        if self.aggregator is None:
            logger.warning("Conversation list requested without an operator session")
            listener([])
            return Subscription(name="conversations:none")
        return self._subscriptions.add(self.aggregator.conversation_list(listener))

    async def cleanup(self) -> None:
        """Take every tracker offline and dispose every subscription."""
        for tracker in list(self._trackers.values()):
            await tracker.cleanup()
        self._trackers.clear()

        if self.aggregator is not None:
            self.aggregator.stop()
            await self.aggregator.flush()
            self.aggregator = None

        await self.pipeline.close()
        disposed = self._subscriptions.dispose()
        logger.info(f"Session cleaned up ({disposed} subscriptions disposed)")
