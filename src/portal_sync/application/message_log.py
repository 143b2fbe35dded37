"""Ordered local message log that the UI layer observes."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from portal_sync.domain.models.message import Message, MessageStatus, can_transition
from portal_sync.domain.models.subscription import Subscription

logger = logging.getLogger(__name__)

MessagesListener = Callable[[list[Message]], None]


class MessageLog:
    """Local, optimistic view of every conversation's messages.

    Delivered messages are ordered by server timestamp; pending and failed
    messages follow in local insertion order. A pending message that is later
    delivered with an earlier server timestamp moves up, so observers must
    tolerate that reordering.
    """

    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}
        self._inserted: dict[str, int] = {}
        self._order = itertools.count()
        self._listeners: dict[str, list[MessagesListener]] = {}

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._messages

    def get(self, message_id: str) -> Message | None:
        """Look up a message by its current id."""
        return self._messages.get(message_id)

    def find_by_client_id(self, client_id: str) -> Message | None:
        """Look up a message by the temporary id it was created under."""
        for message in self._messages.values():
            if message.client_id == client_id:
                return message
        return None

    def messages(self, conversation_id: str) -> list[Message]:
        """Ordered messages of one conversation."""
        members = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        delivered = sorted(
            (m for m in members if m.status is MessageStatus.DELIVERED),
            key=lambda m: (m.created_at or m.client_timestamp, self._inserted[m.id]),
        )
        unsent = sorted(
            (m for m in members if m.status is not MessageStatus.DELIVERED),
            key=lambda m: self._inserted[m.id],
        )
        return delivered + unsent

    def append(self, message: Message) -> None:
        """Add a message at the end of the local sequence."""
        self._messages[message.id] = message
        self._inserted[message.id] = next(self._order)
        self._publish(message.conversation_id)

    def update(self, message_id: str, **changes: Any) -> Message | None:
        """Apply changes to a message, enforcing the status state machine.

        Returns:
            The updated message, or None if it is unknown or the change is not allowed.
        """
        current = self._messages.get(message_id)
        if current is None:
            return None
        status = changes.get("status")
        if status is not None and status is not current.status:
            if not can_transition(current.status, status):
                logger.warning(
                    f"Ignoring status change {current.status} -> {status} for message {message_id}"
                )
                return None
        if changes.get("read") is False and current.read:
            changes.pop("read")
        updated = replace(current, **changes)
        if updated.id != message_id:
            del self._messages[message_id]
            self._inserted[updated.id] = self._inserted.pop(message_id)
        self._messages[updated.id] = updated
        self._publish(updated.conversation_id)
        return updated

    def upsert_delivered(self, message: Message) -> Message | None:
        """Merge a delivered message pushed by the store.

        A stored document whose ``clientId`` matches a failed entry proves the
        earlier send reached the store, so the failed entry is replaced by the
        delivered one. A second stored copy of an already delivered message is
        ignored.

        Returns:
            The message as it now appears in the log, or None if it was ignored.
        """
        existing = self._messages.get(message.id)
        if existing is None and message.client_id:
            existing = self.find_by_client_id(message.client_id)
        if existing is None:
            self.append(message)
            return message
        if existing.id != message.id and existing.status is MessageStatus.DELIVERED:
            logger.debug(f"Ignoring duplicate {message.id} of delivered message {existing.id}")
            return None
        if existing.status is MessageStatus.FAILED:
            logger.info(f"Failed message {existing.id} was stored as {message.id}")
            delivered = replace(message, read=existing.read or message.read)
            del self._messages[existing.id]
            self._inserted.pop(existing.id, None)
            self.append(delivered)
            return delivered
        return self.update(
            existing.id,
            id=message.id,
            status=MessageStatus.DELIVERED,
            created_at=message.created_at,
            read=existing.read or message.read,
        )

    def remove(self, message_id: str) -> Message | None:
        """Drop a message from the local sequence."""
        message = self._messages.pop(message_id, None)
        if message is None:
            return None
        self._inserted.pop(message_id, None)
        self._publish(message.conversation_id)
        return message

    def subscribe(self, conversation_id: str, listener: MessagesListener) -> Subscription:
        """Push the ordered sequence now and after every change to the conversation."""
        self._listeners.setdefault(conversation_id, []).append(listener)
        listener(self.messages(conversation_id))

        def _remove() -> None:
            listeners = self._listeners.get(conversation_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(conversation_id, None)

        return Subscription(_remove, name=f"messages:{conversation_id}")

    def _publish(self, conversation_id: str) -> None:
        listeners = self._listeners.get(conversation_id)
        if not listeners:
            return
        messages = self.messages(conversation_id)
        for listener in list(listeners):
            try:
                listener(messages)
            except Exception as e:
                logger.error(f"Message listener for {conversation_id} failed: {e}", exc_info=True)
