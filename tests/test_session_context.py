"""Tests for SessionContext wiring presence and messaging together."""

import pytest

from portal_sync.adapters.auth import LocalAuthState
from portal_sync.adapters.store import InMemoryStatusStore
from portal_sync.adapters.timers import VirtualScheduler
from portal_sync.application.session_context import SessionContext, SessionSettings
from portal_sync.domain.models import (
    AppLifecycleState,
    ConversationSummary,
    Message,
    PresenceStatus,
    Role,
    Sender,
)

CONVERSATION = "member_1_operator_1"


@pytest.fixture
def member_session(
    store: InMemoryStatusStore, auth: LocalAuthState, scheduler: VirtualScheduler
) -> SessionContext:
    """Session of ``member_1``."""
    return SessionContext(store, auth, scheduler)


@pytest.fixture
def operator_session(store: InMemoryStatusStore, scheduler: VirtualScheduler) -> SessionContext:
    """Session of ``operator_1`` on the same store."""
    return SessionContext(store, LocalAuthState("operator_1"), scheduler)


@pytest.mark.asyncio
async def test_initialize_same_owner_twice_reuses_tracker(
    member_session: SessionContext, store: InMemoryStatusStore
) -> None:
    """Given an initialized owner, when initializing again, then the same tracker is returned."""
    first = await member_session.initialize("member_1", Role.MEMBER, "Ana Santos")
    second = await member_session.initialize("member_1", Role.MEMBER, "Ana Santos")

    assert first is second
    assert first.is_online is True
    assert store.write_count == 1
    assert member_session.tracker("member_1", Role.MEMBER) is first


@pytest.mark.asyncio
async def test_member_session_has_no_conversation_list(member_session: SessionContext) -> None:
    """Given a member session, when asking for the conversation list, then one empty push arrives."""
    await member_session.initialize("member_1", Role.MEMBER)
    pushes: list[list[ConversationSummary]] = []

    subscription = member_session.conversation_list(pushes.append)

    assert pushes == [[]]
    assert member_session.aggregator is None
    subscription.cancel()


@pytest.mark.asyncio
async def test_member_message_reaches_operator_and_is_read(
    member_session: SessionContext,
    operator_session: SessionContext,
    store: InMemoryStatusStore,
    scheduler: VirtualScheduler,
) -> None:
    """Given both sessions, when a member writes and the operator opens it, then unread drops to zero."""
    await member_session.initialize("member_1", Role.MEMBER, "Ana Santos")
    await operator_session.initialize("operator_1", Role.OPERATOR, "Org Admin")
    pushes: list[list[ConversationSummary]] = []
    operator_session.conversation_list(pushes.append)

    member_session.send(
        CONVERSATION, "Hello po", Sender("member_1", Role.MEMBER, "Ana Santos"), {"operator_1"}
    )
    await member_session.pipeline.flush()

    [summary] = pushes[-1]
    assert summary.counterpart_id == "member_1"
    assert summary.counterpart_name == "Ana Santos"
    assert summary.unread_count == 1

    marked = await operator_session.open_conversation(CONVERSATION, "operator_1")
    again = await operator_session.open_conversation(CONVERSATION, "operator_1")

    assert marked == 1
    assert again == 0
    assert pushes[-1][0].unread_count == 0

    await operator_session.aggregator.flush()
    assert store.peek("studentStatus/member_1")["lastSeenAt"] == scheduler.now()


@pytest.mark.asyncio
async def test_messages_and_presence_observed_through_session(
    member_session: SessionContext, operator_session: SessionContext
) -> None:
    """Given an online operator, when a member observes them and chats, then both streams push."""
    await operator_session.initialize("operator_1", Role.OPERATOR)
    await member_session.initialize("member_1", Role.MEMBER)
    statuses: list[PresenceStatus] = []
    messages: list[list[Message]] = []

    member_session.presence_of("operator_1", Role.OPERATOR, statuses.append)
    member_session.messages_of(CONVERSATION, messages.append)
    member_session.send(CONVERSATION, "Hi", Sender("member_1", Role.MEMBER), {"operator_1"})
    await member_session.pipeline.flush()

    assert statuses[-1].is_online is True
    assert [m.content for m in messages[-1]] == ["Hi"]

    result = await member_session.delete(messages[-1][0].id)
    assert result.remote_deleted is True
    assert messages[-1] == []


@pytest.mark.asyncio
async def test_failed_send_retried_through_session(
    member_session: SessionContext, store: InMemoryStatusStore
) -> None:
    """Given a failed send, when retrying through the session, then it is delivered."""
    store.fail_next_writes(1)
    message = member_session.send(CONVERSATION, "Hello", Sender("member_1", Role.MEMBER))
    await member_session.pipeline.flush()

    assert member_session.retry(message.id) is True
    await member_session.pipeline.flush()

    assert member_session.pipeline.log.messages(CONVERSATION)[0].id == "doc000001"


@pytest.mark.asyncio
async def test_lifecycle_change_forwarded_to_trackers(
    member_session: SessionContext, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given no lifecycle source, when the session reports background, then trackers time out."""
    tracker = await member_session.initialize("member_1", Role.MEMBER)

    await member_session.on_app_lifecycle_change(AppLifecycleState.BACKGROUND)
    await scheduler.advance(3601)

    assert tracker.is_online is False
    assert store.peek("studentStatus/member_1")["isOnline"] is False


@pytest.mark.asyncio
async def test_cleanup_disposes_everything(
    operator_session: SessionContext, store: InMemoryStatusStore, scheduler: VirtualScheduler
) -> None:
    """Given an operator session with observers, when cleaning up, then nothing keeps running."""
    tracker = await operator_session.initialize("operator_1", Role.OPERATOR)
    operator_session.presence_of("member_1", Role.MEMBER, lambda status: None)
    operator_session.messages_of(CONVERSATION, lambda messages: None)
    operator_session.conversation_list(lambda summaries: None)

    await operator_session.cleanup()
    writes = store.write_count
    await scheduler.advance(3600)

    assert tracker.is_online is False
    assert store.peek("adminStatus/operator_1")["isOnline"] is False
    assert store.listener_count == 0
    assert scheduler.active_timers == []
    assert store.write_count == writes
    assert operator_session.aggregator is None
    assert operator_session.tracker("operator_1", Role.OPERATOR) is None


@pytest.mark.asyncio
async def test_member_record_removed_on_offline_when_configured(
    store: InMemoryStatusStore, auth: LocalAuthState, scheduler: VirtualScheduler
) -> None:
    """Given record removal for members, when a member session ends, then the record is deleted."""
    session = SessionContext(
        store, auth, scheduler, settings=SessionSettings(remove_member_record_on_offline=True)
    )
    await session.initialize("member_1", Role.MEMBER)

    await session.cleanup()

    assert store.peek("studentStatus/member_1") is None
