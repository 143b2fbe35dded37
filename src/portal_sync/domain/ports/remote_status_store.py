"""Remote status store port."""

from collections.abc import Callable
from typing import Any, Protocol

from portal_sync.domain.models.store_document import Document, Snapshot, StoreQuery
from portal_sync.domain.models.subscription import Subscription

SnapshotListener = Callable[[Snapshot], None]


class RemoteStatusStore(Protocol):
    """Port for the managed, push-subscribable document store.

    Every method may raise ``AuthExpiredError`` when the session is gone.
    """

    async def get(self, key: str) -> dict[str, Any] | None:
        """Read one record, or None if it does not exist.

        Raises:
            StoreReadError: If the read fails.
        """
        ...

    async def set(self, key: str, partial: dict[str, Any], merge: bool = True) -> None:
        """Write a record, merging into the existing one when ``merge`` is True.

        Raises:
            StoreWriteError: If the write fails.
        """
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> Document:
        """Create a record with a store-assigned id.

        Returns:
            The stored document with server timestamps resolved.

        Raises:
            StoreWriteError: If the write fails.
        """
        ...

    async def delete(self, key: str) -> None:
        """Delete a record; deleting a missing record is not an error.

        Raises:
            StoreWriteError: If the delete fails.
        """
        ...

    async def query(self, query: StoreQuery) -> list[Document]:
        """Run a one-shot query.

        Raises:
            StoreReadError: If the query fails.
        """
        ...

    async def batch_update(self, updates: list[tuple[str, dict[str, Any]]]) -> None:
        """Apply partial updates to existing records atomically.

        Raises:
            StoreWriteError: If the commit fails; then none of the updates applied.
        """
        ...

    def subscribe(self, target: str | StoreQuery, listener: SnapshotListener) -> Subscription:
        """Listen to a record key or a query.

        Delivers an initial snapshot of the current state, then at-least-once
        snapshots of subsequent changes. No ordering across different keys.
        """
        ...
