"""In-memory remote status store.

Behaves like the managed document store for local runs and tests: store-assigned
ids, server timestamps resolved at commit time, merge writes, atomic batches and
push subscriptions. Faults can be injected to exercise the engine's degraded paths.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from portal_sync.domain.errors import AuthExpiredError, StoreReadError, StoreWriteError
from portal_sync.domain.models.store_document import (
    ChangeKind,
    Document,
    DocumentChange,
    ServerTimestamp,
    Snapshot,
    StoreQuery,
)
from portal_sync.domain.models.subscription import Subscription
from portal_sync.domain.ports.remote_status_store import RemoteStatusStore, SnapshotListener

if TYPE_CHECKING:
    from portal_sync.domain.ports.scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteRecord:
    """One committed write, kept in the store's journal."""

    op: str  # "set", "add", "delete" or "batch"
    keys: tuple[str, ...]
    at: datetime


@dataclass
class _Listener:
    target: str | StoreQuery
    callback: SnapshotListener
    visible: set[str]


class InMemoryStatusStore(RemoteStatusStore):
    """Remote status store kept in process memory."""

    def __init__(self, scheduler: Scheduler | None = None) -> None:
        """Initialize an empty store.

        Args:
            scheduler: Source of commit times; wall clock if omitted.
        """
        self._scheduler = scheduler
        self._documents: dict[str, dict[str, Any]] = {}
        self._listeners: list[_Listener] = []
        self._ids = itertools.count(1)
        self.writes: list[WriteRecord] = []
        # Fault injection
        self.offline = False
        self.fail_reads = False
        self.auth_expired = False
        self._failures: list[Exception] = []

    # Fault injection

    def fail_next_writes(self, count: int = 1, error: Exception | None = None) -> None:
        """Make the next ``count`` write calls fail."""
        for _ in range(count):
            self._failures.append(error or StoreWriteError("injected write failure"))

    @property
    def write_count(self) -> int:
        """Number of committed writes."""
        return len(self.writes)

    def peek(self, key: str) -> dict[str, Any] | None:
        """Read a record synchronously, bypassing fault injection."""
        data = self._documents.get(key)
        return copy.deepcopy(data) if data is not None else None

    # RemoteStatusStore

    async def get(self, key: str) -> dict[str, Any] | None:
        """Read one record."""
        await asyncio.sleep(0)
        self._check_read(key)
        return self.peek(key)

    async def set(self, key: str, partial: dict[str, Any], merge: bool = True) -> None:
        """Write a record, merging into the existing one when ``merge`` is True."""
        await asyncio.sleep(0)
        self._check_write(key)
        resolved = self._resolve(partial)
        before = self._documents.get(key)
        if merge and before is not None:
            self._documents[key] = {**before, **resolved}
        else:
            self._documents[key] = resolved
        self._journal("set", key)
        self._notify({key})

    async def add(self, collection: str, data: dict[str, Any]) -> Document:
        """Create a record with a store-assigned id."""
        await asyncio.sleep(0)
        self._check_write(collection)
        key = f"{collection}/doc{next(self._ids):06d}"
        self._documents[key] = self._resolve(data)
        self._journal("add", key)
        self._notify({key})
        return Document(key=key, data=copy.deepcopy(self._documents[key]))

    async def delete(self, key: str) -> None:
        """Delete a record."""
        await asyncio.sleep(0)
        self._check_write(key)
        existed = self._documents.pop(key, None) is not None
        self._journal("delete", key)
        if existed:
            self._notify({key})

    async def query(self, query: StoreQuery) -> list[Document]:
        """Run a one-shot query."""
        await asyncio.sleep(0)
        self._check_read(query.collection)
        return self._matching(query)

    async def batch_update(self, updates: list[tuple[str, dict[str, Any]]]) -> None:
        """Apply partial updates to existing records atomically."""
        await asyncio.sleep(0)
        if not updates:
            return
        self._check_write(updates[0][0])
        missing = [key for key, _ in updates if key not in self._documents]
        if missing:
            raise StoreWriteError(f"Batch rejected, records not found: {missing}", key=missing[0])
        for key, partial in updates:
            self._documents[key] = {**self._documents[key], **self._resolve(partial)}
        keys = tuple(key for key, _ in updates)
        self.writes.append(WriteRecord(op="batch", keys=keys, at=self._now()))
        self._notify(set(keys))

    def subscribe(self, target: str | StoreQuery, listener: SnapshotListener) -> Subscription:
        """Listen to a key or query; the current state is delivered immediately."""
        entry = _Listener(target=target, callback=listener, visible=set())
        self._listeners.append(entry)

        if self.fail_reads:
            self._deliver(entry, Snapshot(error=StoreReadError(f"Cannot subscribe to {target}")))
        else:
            documents = self._visible_documents(target)
            entry.visible = {d.key for d in documents}
            changes = [DocumentChange(ChangeKind.ADDED, d) for d in documents]
            self._deliver(entry, Snapshot(changes=changes, documents=documents))

        def _remove() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return Subscription(_remove, name=f"store:{target}")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # Internals

    def _now(self) -> datetime:
        return self._scheduler.now() if self._scheduler is not None else datetime.now(UTC)

    def _check_read(self, key: str) -> None:
        if self.auth_expired:
            raise AuthExpiredError("Session expired")
        if self.fail_reads or self.offline:
            raise StoreReadError(f"Read failed for {key}", key=key)

    def _check_write(self, key: str) -> None:
        if self.auth_expired:
            raise AuthExpiredError("Session expired")
        if self._failures:
            raise self._failures.pop(0)
        if self.offline:
            raise StoreWriteError(f"Network unavailable, write to {key} failed", key=key)

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        now = self._now()
        return {
            k: (now if isinstance(v, ServerTimestamp) else copy.deepcopy(v)) for k, v in data.items()
        }

    def _journal(self, op: str, key: str) -> None:
        self.writes.append(WriteRecord(op=op, keys=(key,), at=self._now()))

    def _matching(self, query: StoreQuery) -> list[Document]:
        return [
            Document(key=key, data=copy.deepcopy(data))
            for key, data in self._documents.items()
            if query.matches(Document(key=key, data=data))
        ]

    def _visible_documents(self, target: str | StoreQuery) -> list[Document]:
        if isinstance(target, StoreQuery):
            return self._matching(target)
        data = self._documents.get(target)
        return [Document(key=target, data=copy.deepcopy(data))] if data is not None else []

    def _notify(self, keys: set[str]) -> None:
        for entry in list(self._listeners):
            changes = self._changes_for(entry, keys)
            if changes:
                documents = self._visible_documents(entry.target)
                self._deliver(entry, Snapshot(changes=changes, documents=documents))

    def _changes_for(self, entry: _Listener, keys: set[str]) -> list[DocumentChange]:
        changes: list[DocumentChange] = []
        for key in sorted(keys):
            data = self._documents.get(key)
            if isinstance(entry.target, StoreQuery):
                now_visible = data is not None and entry.target.matches(Document(key, data))
            else:
                if key != entry.target:
                    continue
                now_visible = data is not None
            was_visible = key in entry.visible
            if now_visible:
                kind = ChangeKind.MODIFIED if was_visible else ChangeKind.ADDED
                changes.append(DocumentChange(kind, Document(key, copy.deepcopy(data))))
                entry.visible.add(key)
            elif was_visible:
                changes.append(DocumentChange(ChangeKind.REMOVED, Document(key, {})))
                entry.visible.discard(key)
        return changes

    @staticmethod
    def _deliver(entry: _Listener, snapshot: Snapshot) -> None:
        try:
            entry.callback(snapshot)
        except Exception as e:
            logger.error(f"Snapshot listener for {entry.target} failed: {e}", exc_info=True)
