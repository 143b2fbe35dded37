"""Tests for ConversationAggregator folding the operator's message stream."""

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from portal_sync.adapters.store import InMemoryStatusStore
from portal_sync.adapters.timers import VirtualScheduler
from portal_sync.application.conversation_aggregator import ConversationAggregator
from portal_sync.application.presence_directory import PresenceDirectory
from portal_sync.domain.errors import StoreWriteError
from portal_sync.domain.models import SERVER_TIMESTAMP, ConversationSummary, Role

OPERATOR_ID = "operator_1"


async def add_message(
    store: InMemoryStatusStore,
    counterpart_id: str,
    content: str,
    from_operator: bool = False,
    created_at: datetime | None = None,
    sender_name: str | None = None,
) -> str:
    """Store a message between the operator and a counterpart, returning its key."""
    sender_id = OPERATOR_ID if from_operator else counterpart_id
    data: dict[str, Any] = {
        "conversationId": f"{counterpart_id}_{OPERATOR_ID}",
        "senderId": sender_id,
        "senderRole": "operator" if from_operator else "member",
        "senderName": sender_name or ("Org Admin" if from_operator else counterpart_id.title()),
        "content": content,
        "participants": [counterpart_id, OPERATOR_ID],
        "read": False,
        "createdAt": created_at or SERVER_TIMESTAMP,
    }
    document = await store.add("messages", data)
    return document.key


@pytest.fixture
def directory(store: InMemoryStatusStore, scheduler: VirtualScheduler) -> PresenceDirectory:
    """Presence directory over the in-memory store."""
    return PresenceDirectory(
        store, scheduler, collections={Role.OPERATOR: "adminStatus", Role.MEMBER: "studentStatus"}
    )


@pytest.fixture
def aggregator(store: InMemoryStatusStore, directory: PresenceDirectory) -> ConversationAggregator:
    """Aggregator for ``operator_1``, not yet started."""
    return ConversationAggregator(OPERATOR_ID, store, directory)


@pytest.mark.asyncio
async def test_summaries_sorted_by_latest_message(
    aggregator: ConversationAggregator, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given two counterparts, when folding, then the most recent conversation comes first."""
    await add_message(store, "member_1", "Hello po")
    await scheduler.advance(60)
    await add_message(store, "member_1", "Are you there?")
    await scheduler.advance(60)
    await add_message(store, "member_2", "Good morning")

    aggregator.start()
    summaries = aggregator.summaries()

    assert [(s.counterpart_id, s.last_message, s.unread_count) for s in summaries] == [
        ("member_2", "Good morning", 1),
        ("member_1", "Are you there?", 2),
    ]
    assert summaries[0].last_message_at == scheduler.now()
    assert summaries[1].counterpart_name == "Member_1"


@pytest.mark.asyncio
async def test_later_server_timestamp_wins_regardless_of_arrival(
    aggregator: ConversationAggregator, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given a newer message that arrives first, when an older one arrives, then the newer stays last."""
    aggregator.start()
    base = scheduler.now()

    await add_message(store, "member_1", "newer", created_at=base + timedelta(seconds=20))
    await add_message(store, "member_1", "older", created_at=base + timedelta(seconds=10))

    [summary] = aggregator.summaries()
    assert summary.last_message == "newer"
    assert summary.last_message_at == base + timedelta(seconds=20)


@pytest.mark.asyncio
async def test_equal_timestamps_resolve_to_later_arrival(
    aggregator: ConversationAggregator, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given two messages with the same server timestamp, when folding, then the later arrival wins."""
    aggregator.start()
    moment = scheduler.now()

    await add_message(store, "member_1", "first", created_at=moment)
    await add_message(store, "member_1", "second", created_at=moment)

    assert aggregator.summaries()[0].last_message == "second"


@pytest.mark.asyncio
async def test_operator_messages_do_not_count_as_unread(
    aggregator: ConversationAggregator, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given an operator reply, when folding, then it is the last message but not unread."""
    aggregator.start()
    await add_message(store, "member_1", "Question po", sender_name="Ana Santos")
    await scheduler.advance(5)
    await add_message(store, "member_1", "Answer", from_operator=True)

    [summary] = aggregator.summaries()
    assert summary.last_message == "Answer"
    assert summary.unread_count == 1
    assert summary.counterpart_name == "Ana Santos"


@pytest.mark.asyncio
async def test_read_changes_update_unread_count(
    aggregator: ConversationAggregator, store: InMemoryStatusStore
) -> None:
    """Given unread messages, when they are marked read in the store, then the count drops."""
    aggregator.start()
    first = await add_message(store, "member_1", "one")
    second = await add_message(store, "member_1", "two")
    assert aggregator.summaries()[0].unread_count == 2

    await store.batch_update([(first, {"read": True}), (second, {"read": True})])

    assert aggregator.summaries()[0].unread_count == 0


@pytest.mark.asyncio
async def test_removed_messages_refold_summary(
    aggregator: ConversationAggregator, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given a deleted latest message, when folding, then the previous one becomes the last message."""
    aggregator.start()
    await add_message(store, "member_1", "kept")
    await scheduler.advance(5)
    latest = await add_message(store, "member_1", "deleted")

    await store.delete(latest)

    [summary] = aggregator.summaries()
    assert summary.last_message == "kept"
    assert summary.unread_count == 1


@pytest.mark.asyncio
async def test_removing_all_messages_drops_summary(
    aggregator: ConversationAggregator, store: InMemoryStatusStore
) -> None:
    """Given a single message, when it is deleted, then the conversation disappears."""
    aggregator.start()
    key = await add_message(store, "member_1", "only")

    await store.delete(key)

    assert aggregator.summaries() == []


@pytest.mark.asyncio
async def test_new_counterpart_message_touches_last_seen(
    aggregator: ConversationAggregator, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given a started aggregator, when a member writes, then their last-seen time is updated."""
    await store.set("studentStatus/member_1", {"ownerId": "member_1", "isOnline": True})
    aggregator.start()

    await add_message(store, "member_1", "Hello po", sender_name="Ana Santos")
    await aggregator.flush()

    record = store.peek("studentStatus/member_1")
    assert record["lastSeenAt"] == scheduler.now()
    assert record["displayName"] == "Ana Santos"
    assert record["isOnline"] is True


@pytest.mark.asyncio
async def test_history_does_not_touch_last_seen(
    aggregator: ConversationAggregator, store: InMemoryStatusStore
) -> None:
    """Given existing messages, when the aggregator starts, then no last-seen write happens."""
    await add_message(store, "member_1", "old message")

    aggregator.start()
    await aggregator.flush()

    assert store.peek("studentStatus/member_1") is None


@pytest.mark.asyncio
async def test_last_seen_failure_does_not_break_fold(store: InMemoryStatusStore) -> None:
    """Given a failing directory, when a member writes, then the summary still updates."""
    directory = MagicMock()
    directory.touch_last_seen = AsyncMock(side_effect=StoreWriteError("offline"))
    aggregator = ConversationAggregator(OPERATOR_ID, store, directory)
    aggregator.start()

    await add_message(store, "member_1", "Hello po")
    await aggregator.flush()

    directory.touch_last_seen.assert_awaited_once_with("member_1", Role.MEMBER, "Member_1")
    assert aggregator.summaries()[0].last_message == "Hello po"


@pytest.mark.asyncio
async def test_conversation_list_pushes_until_stopped(
    aggregator: ConversationAggregator, store: InMemoryStatusStore
) -> None:
    """Given a list listener, when messages arrive and the aggregator stops, then pushes stop too."""
    pushes: list[list[ConversationSummary]] = []
    aggregator.start()
    aggregator.conversation_list(pushes.append)
    assert pushes == [[]]

    await add_message(store, "member_1", "Hello po")
    assert [s.last_message for s in pushes[-1]] == ["Hello po"]

    aggregator.stop()
    await add_message(store, "member_1", "Still there?")

    assert len(pushes) == 2
    assert store.listener_count == 0


@pytest.mark.asyncio
async def test_messages_without_operator_are_ignored(
    aggregator: ConversationAggregator, store: InMemoryStatusStore
) -> None:
    """Given a conversation between two members, when folding, then it is not listed."""
    aggregator.start()

    await store.add(
        "messages",
        {
            "conversationId": "member_1_member_2",
            "senderId": "member_1",
            "content": "psst",
            "participants": ["member_1", "member_2"],
            "read": False,
            "createdAt": SERVER_TIMESTAMP,
        },
    )

    assert aggregator.summaries() == []
