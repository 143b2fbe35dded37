"""Tests for MessageLog ordering and reconciliation."""

from datetime import UTC, datetime, timedelta

from portal_sync.application.message_log import MessageLog
from portal_sync.domain.models import Message, MessageStatus, Role

T0 = datetime(2025, 1, 6, 8, 0, tzinfo=UTC)


def make_message(message_id: str, content: str, **kwargs: object) -> Message:
    """Create a message in conversation ``c1``."""
    defaults: dict = {
        "conversation_id": "c1",
        "sender_id": "m1",
        "sender_role": Role.MEMBER,
        "client_timestamp": T0,
    }
    defaults.update(kwargs)
    return Message(id=message_id, content=content, **defaults)


def test_delivered_ordered_by_server_time_then_unsent() -> None:
    """Given mixed messages, when listing, then delivered sort by server time and unsent follow."""
    log = MessageLog()
    log.append(make_message("temp_1", "pending"))
    log.append(
        make_message(
            "b", "later", status=MessageStatus.DELIVERED, created_at=T0 + timedelta(seconds=20)
        )
    )
    log.append(
        make_message(
            "a", "earlier", status=MessageStatus.DELIVERED, created_at=T0 + timedelta(seconds=10)
        )
    )

    assert [m.content for m in log.messages("c1")] == ["earlier", "later", "pending"]


def test_update_rejects_reverting_delivered() -> None:
    """Given a delivered message, when setting it back to pending, then the change is ignored."""
    log = MessageLog()
    log.append(make_message("a", "hi", status=MessageStatus.DELIVERED, created_at=T0))

    assert log.update("a", status=MessageStatus.PENDING) is None
    assert log.get("a").status is MessageStatus.DELIVERED


def test_read_never_flips_back() -> None:
    """Given a read message, when an update says unread, then it stays read."""
    log = MessageLog()
    log.append(make_message("a", "hi", status=MessageStatus.DELIVERED, created_at=T0, read=True))

    log.update("a", read=False)

    assert log.get("a").read is True


def test_upsert_replaces_provisional_entry_by_client_id() -> None:
    """Given a pending message, when its stored copy arrives, then it replaces the provisional entry."""
    log = MessageLog()
    log.append(make_message("temp_1", "hi", client_id="temp_1"))

    log.upsert_delivered(
        make_message(
            "doc1", "hi", status=MessageStatus.DELIVERED, created_at=T0, client_id="temp_1"
        )
    )

    assert [(m.id, m.status) for m in log.messages("c1")] == [("doc1", MessageStatus.DELIVERED)]
    assert "temp_1" not in log


def test_subscribers_only_see_their_conversation() -> None:
    """Given observers of two conversations, when one changes, then only its observer is pushed."""
    log = MessageLog()
    c1: list[list[Message]] = []
    c2: list[list[Message]] = []
    log.subscribe("c1", c1.append)
    subscription = log.subscribe("c2", c2.append)

    log.append(make_message("temp_1", "hi"))
    subscription.cancel()
    log.append(make_message("temp_2", "hey", conversation_id="c2"))

    assert len(c1) == 2
    assert c2 == [[]]
