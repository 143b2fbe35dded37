"""Store-native document types shared by the store port and its adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ServerTimestamp:
    """Sentinel resolved by the store to its own commit time."""

    _instance: ServerTimestamp | None = None

    def __new__(cls) -> ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = ServerTimestamp()


class ChangeKind(StrEnum):
    """Kind of change carried by a snapshot."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class Document:
    """A keyed record as stored remotely.

    ``key`` is a slash-separated path, e.g. ``messages/abc123``.
    """

    key: str
    data: dict[str, Any]

    @property
    def collection(self) -> str:
        """Collection part of the key."""
        return self.key.rsplit("/", 1)[0]

    @property
    def id(self) -> str:
        """Document id part of the key."""
        return self.key.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class DocumentChange:
    """One document-level change in a snapshot."""

    kind: ChangeKind
    document: Document


@dataclass(frozen=True)
class Snapshot:
    """A push delivered to a subscriber.

    ``changes`` lists what changed since the previous snapshot for the same
    subscription; ``documents`` is the full current result set.
    """

    changes: list[DocumentChange] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)
    error: Exception | None = None


@dataclass(frozen=True)
class StoreQuery:
    """Collection query with equality filters and an optional array-contains filter."""

    collection: str
    equals: dict[str, Any] = field(default_factory=dict)
    array_contains: tuple[str, Any] | None = None

    def matches(self, document: Document) -> bool:
        """Check whether a document belongs to this query's result set."""
        if document.collection != self.collection:
            return False
        for field_name, expected in self.equals.items():
            if document.data.get(field_name) != expected:
                return False
        if self.array_contains is not None:
            field_name, expected = self.array_contains
            values = document.data.get(field_name)
            if not isinstance(values, list | tuple | set) or expected not in values:
                return False
        return True


def to_unix_ms(value: datetime | None) -> int | None:
    """Convert a store timestamp to Unix milliseconds."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def from_unix_ms(value: int | None) -> datetime | None:
    """Convert Unix milliseconds back to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)
