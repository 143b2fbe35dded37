"""Tests for the Firestore value codec."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from portal_sync.adapters.store.value_codec import (
    decode_fields,
    encode_fields,
    encode_value,
    format_timestamp,
    parse_timestamp,
    split_server_timestamps,
)
from portal_sync.domain.models import SERVER_TIMESTAMP


def test_encode_message_document() -> None:
    """Given a message document, when encoding, then every field gets its Firestore type."""
    sent = datetime(2025, 1, 6, 8, 0, tzinfo=UTC)

    encoded = encode_fields(
        {
            "content": "Hello",
            "read": False,
            "participants": ["m1", "op1"],
            "clientTimestamp": sent,
            "senderName": None,
            "attempt": 2,
            "meta": {"score": 0.5},
        }
    )

    assert encoded == {
        "content": {"stringValue": "Hello"},
        "read": {"booleanValue": False},
        "participants": {
            "arrayValue": {"values": [{"stringValue": "m1"}, {"stringValue": "op1"}]}
        },
        "clientTimestamp": {"timestampValue": "2025-01-06T08:00:00Z"},
        "senderName": {"nullValue": None},
        "attempt": {"integerValue": "2"},
        "meta": {"mapValue": {"fields": {"score": {"doubleValue": 0.5}}}},
    }


def test_decode_inverts_encode_for_typical_document() -> None:
    """Given an encoded presence record, when decoding, then the original values come back."""
    record = {
        "ownerId": "op1",
        "isOnline": True,
        "lastActiveAt": datetime(2025, 1, 6, 8, 0, 30, tzinfo=UTC),
        "tags": ["a"],
    }

    assert decode_fields(encode_fields(record)) == record


def test_encode_rejects_server_timestamp_and_unknown_types() -> None:
    """Given values Firestore cannot carry inline, when encoding, then an error is raised."""
    with pytest.raises(ValueError):
        encode_value(SERVER_TIMESTAMP)
    with pytest.raises(TypeError):
        encode_value(object())


def test_timestamps_are_normalized_to_utc() -> None:
    """Given an offset timestamp, when formatting and parsing, then UTC is used."""
    manila = timezone(timedelta(hours=8))

    assert format_timestamp(datetime(2025, 1, 6, 16, 0, tzinfo=manila)) == "2025-01-06T08:00:00Z"
    assert parse_timestamp("2025-01-06T08:00:00Z") == datetime(2025, 1, 6, 8, 0, tzinfo=UTC)


def test_split_server_timestamps() -> None:
    """Given a partial with sentinels, when splitting, then sentinels become transform paths."""
    plain, transforms = split_server_timestamps(
        {"isOnline": True, "lastActiveAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP}
    )

    assert plain == {"isOnline": True}
    assert transforms == ["lastActiveAt", "updatedAt"]
