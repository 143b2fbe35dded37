"""Optimistic message delivery with explicit retry and batched read receipts."""

from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from collections.abc import Coroutine
from functools import partial
from typing import TYPE_CHECKING, Any

from portal_sync.application.message_log import MessageLog, MessagesListener
from portal_sync.domain.contracts.message_pipeline import MessagePipelineProtocol
from portal_sync.domain.errors import AuthExpiredError, StoreReadError, StoreWriteError
from portal_sync.domain.models.message import Message, MessageStatus, Sender
from portal_sync.domain.models.results import DeleteResult, ErrorDetails
from portal_sync.domain.models.store_document import (
    SERVER_TIMESTAMP,
    ChangeKind,
    Document,
    Snapshot,
    StoreQuery,
)
from portal_sync.domain.models.subscription import Subscription, SubscriptionRegistry

if TYPE_CHECKING:
    from portal_sync.domain.ports import RemoteStatusStore, Scheduler

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT_SECONDS = 15


class MessageDeliveryPipeline(MessagePipelineProtocol):
    """Sends, retries and deletes chat messages against the remote store.

    Every mutation lands in the local :class:`MessageLog` before any I/O starts,
    so observers see a sent message immediately as ``pending``. Persistence runs
    in background tasks; :meth:`flush` waits for them.
    """

    def __init__(
        self,
        store: RemoteStatusStore,
        scheduler: Scheduler,
        messages_collection: str = "messages",
        send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        log: MessageLog | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            store: Remote store holding messages.
            scheduler: Source of client timestamps.
            messages_collection: Collection messages are written to.
            send_timeout_seconds: Seconds before an unacknowledged send fails.
            log: Local message log; a fresh one if omitted.
        """
        self._store = store
        self._scheduler = scheduler
        self._collection = messages_collection
        self._send_timeout_seconds = send_timeout_seconds
        self.log = log or MessageLog()
        self._temp_ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()
        self._tombstones: dict[str, str] = {}  # suppressed id -> document it belongs to
        self._marking: set[tuple[str, str]] = set()
        self._subscriptions = SubscriptionRegistry()

    def _key(self, message_id: str) -> str:
        return f"{self._collection}/{message_id}"

    def _spawn(self, coroutine: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coroutine, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def in_flight(self) -> int:
        """Number of persistence tasks still running."""
        return len(self._tasks)

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
            None if the content is blank and nothing was sent.
        """
        text = content.strip()
        if not text:
            logger.debug(f"Ignoring blank message in conversation {conversation_id}")
            return None

        temp_id = f"temp_{next(self._temp_ids)}"
        message = Message(
            id=temp_id,
            conversation_id=conversation_id,
            sender_id=sender.id,
            sender_role=sender.role,
            sender_name=sender.name,
            content=text,
            client_timestamp=self._scheduler.now(),
            status=MessageStatus.PENDING,
            participants=frozenset(participants or ()) | {sender.id},
            client_id=str(uuid.uuid4()),
        )
        self.log.append(message)
        logger.debug(f"Queued message {temp_id} in conversation {conversation_id}")
        self._spawn(self._persist(temp_id), name=f"send:{temp_id}")
        return message

    def retry(self, message_id: str) -> bool:
        """Re-send a failed message with its original content and sender.

        A failed message whose earlier send turns out to have reached the store
        is replaced by the stored copy, after which it can no longer be retried.

        Returns:
            True if a retry was started, False if the message is not failed.
        """
        message = self.log.get(message_id)
        if message is None:
            logger.warning(f"Cannot retry unknown message {message_id}")
            return False
        if message.status is not MessageStatus.FAILED:
            logger.warning(f"Cannot retry message {message_id} in status {message.status}")
            return False

        self.log.update(message_id, status=MessageStatus.PENDING)
        logger.info(f"Retrying message {message_id}")
        self._spawn(self._persist(message_id), name=f"retry:{message_id}")
        return True

    async def _add_before_timeout(self, document: dict[str, Any]) -> Document:
        """Add ``document``, giving up once the send timeout passes on the scheduler."""
        add = asyncio.ensure_future(self._store.add(self._collection, document))
        expired = False

        async def _expire() -> None:
            nonlocal expired
            if not add.done():
                expired = True
                add.cancel()

        timer = self._scheduler.schedule_once(self._send_timeout_seconds, _expire)
        try:
            return await add
        except asyncio.CancelledError:
            if not expired:
                raise
            raise TimeoutError(
                f"No acknowledgement within {self._send_timeout_seconds} seconds"
            ) from None
        finally:
            self._scheduler.cancel(timer)

    async def _persist(self, message_id: str) -> None:
        message = self.log.get(message_id)
        if message is None:
            return

        document = {**message.to_document(), "createdAt": SERVER_TIMESTAMP}
        try:
            stored = await self._add_before_timeout(document)
        except Exception as e:
            logger.error(f"Failed to send message {message_id}: {type(e).__name__}: {e}")
            if message_id in self.log:
                self.log.update(message_id, status=MessageStatus.FAILED)
            return

        if self._is_tombstoned(message_id):
            # Deleted locally while the add was in flight
            self._bury(message_id, message.client_id, stored.id, document_id=stored.id)
            try:
                await self._store.delete(stored.key)
                logger.info(f"Deleted message {stored.id} that was removed while sending")
            except (StoreWriteError, AuthExpiredError) as e:
                logger.error(f"Failed to delete message {stored.id} removed while sending: {e}")
            return

        if message_id not in self.log:
            if stored.id in self.log:
                # A pushed snapshot already reconciled the provisional entry
                logger.debug(f"Message {message_id} already reconciled as {stored.id}")
            else:
                # An earlier attempt was stored while this retry was in flight
                self._drop_duplicate(stored.id)
            return

        self.log.update(
            message_id,
            id=stored.id,
            status=MessageStatus.DELIVERED,
            created_at=stored.data.get("createdAt"),
        )
        logger.info(f"Delivered message {message_id} as {stored.id}")

    def _is_tombstoned(self, *ids: str | None) -> bool:
        return any(i is not None and i in self._tombstones for i in ids)

    def _bury(self, *ids: str | None, document_id: str) -> None:
        for i in ids:
            if i is not None:
                self._tombstones[i] = document_id

    def _forget(self, document_id: str) -> None:
        self._tombstones = {k: v for k, v in self._tombstones.items() if v != document_id}

    @property
    def tombstone_count(self) -> int:
        """Number of ids still suppressed because they were deleted locally."""
        return len(self._tombstones)

    def _drop_duplicate(self, document_id: str) -> None:
        if self._is_tombstoned(document_id):
            return
        logger.warning(f"Removing duplicate stored copy {document_id}")
        self._bury(document_id, document_id=document_id)
        self._spawn(self._delete_remote(document_id), name=f"dedupe:{document_id}")

    async def _delete_remote(self, document_id: str) -> None:
        try:
            await self._store.delete(self._key(document_id))
        except (StoreWriteError, AuthExpiredError) as e:
            logger.error(f"Failed to remove duplicate message {document_id}: {e}")

    async def delete(self, message_id: str) -> DeleteResult:
        """Remove a message locally, then remotely.

        The local removal is not rolled back if the remote delete fails.
        """
        message = self.log.remove(message_id)
        if message is None:
            logger.warning(f"Cannot delete unknown message {message_id}")
            return DeleteResult(message_id=message_id, removed_locally=False, remote_deleted=False)

        self._bury(message_id, message.client_id, document_id=message_id)

        if message.status is not MessageStatus.DELIVERED:
            # Never stored; an in-flight add is deleted by its persist task
            return DeleteResult(message_id=message_id, removed_locally=True, remote_deleted=False)

        try:
            await self._store.delete(self._key(message_id))
        except (StoreWriteError, AuthExpiredError) as e:
            logger.error(f"Remote delete of message {message_id} failed: {e}")
            return DeleteResult(
                message_id=message_id,
                removed_locally=True,
                remote_deleted=False,
                error=ErrorDetails.from_exception(e),
            )
        logger.info(f"Deleted message {message_id}")
        return DeleteResult(message_id=message_id, removed_locally=True, remote_deleted=True)

    async def mark_conversation_read(self, conversation_id: str, reader_id: str) -> int:
        """Mark every unread message addressed to ``reader_id`` as read in one batch.

        Returns:
            Number of messages marked read; 0 when nothing was unread or the store failed.
        """
        marker = (conversation_id, reader_id)
        if marker in self._marking:
            logger.debug(f"Read receipts for {conversation_id} already in progress")
            return 0

        self._marking.add(marker)
        try:
            documents = await self._store.query(
                StoreQuery(
                    collection=self._collection,
                    equals={"conversationId": conversation_id, "read": False},
                )
            )
            unread = [
                d
                for d in documents
                if reader_id in (d.data.get("participants") or ())
                and d.data.get("senderId") != reader_id
            ]
            if not unread:
                return 0
            await self._store.batch_update([(d.key, {"read": True}) for d in unread])
        except (StoreReadError, StoreWriteError, AuthExpiredError) as e:
            logger.error(f"Error marking conversation {conversation_id} read: {e}")
            return 0
        finally:
            self._marking.discard(marker)

        for document in unread:
            if document.id in self.log:
                self.log.update(document.id, read=True)
        logger.info(f"Marked {len(unread)} messages read in {conversation_id} for {reader_id}")
        return len(unread)

    def messages_of(self, conversation_id: str, listener: MessagesListener) -> Subscription:
        """Observe one conversation's ordered local sequence.

        Also subscribes to the conversation in the store so messages from other
        participants and remote changes are reconciled into the log.
        """
        local = self.log.subscribe(conversation_id, listener)
        remote = self._store.subscribe(
            StoreQuery(collection=self._collection, equals={"conversationId": conversation_id}),
            partial(self._on_remote_snapshot, conversation_id),
        )

        def _cancel() -> None:
            local.cancel()
            remote.cancel()

        subscription = Subscription(_cancel, name=f"conversation:{conversation_id}")
        return self._subscriptions.add(subscription)

    def _on_remote_snapshot(self, conversation_id: str, snapshot: Snapshot) -> None:
        if snapshot.error is not None:
            logger.warning(f"Message stream for {conversation_id} failed: {snapshot.error}")
            return
        for change in snapshot.changes:
            document = change.document
            if change.kind is ChangeKind.REMOVED:
                self._forget(document.id)
                if self.log.remove(document.id) is not None:
                    logger.debug(f"Message {document.id} removed remotely")
                continue
            message = Message.from_document(document.id, document.data)
            if self._is_tombstoned(message.id, message.client_id):
                continue
            if message.created_at is None:
                continue
            if self.log.upsert_delivered(message) is None:
                self._drop_duplicate(message.id)

    async def flush(self) -> None:
        """Wait for every in-flight send and retry to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Settle in-flight work and drop every store subscription."""
        await self.flush()
        self._subscriptions.dispose()
