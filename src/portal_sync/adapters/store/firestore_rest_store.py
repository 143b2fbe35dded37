"""Cloud Firestore REST adapter for the remote status store.

Uses the Firestore v1 REST API:
https://firebase.google.com/docs/firestore/reference/rest

Writes go through ``documents:commit`` so server timestamps, merge masks and
atomic batches map onto native write transforms and preconditions. The REST API
has no push channel, so subscriptions poll on the scheduler and diff results.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

import aiohttp

from portal_sync.adapters.store.value_codec import (
    decode_fields,
    encode_fields,
    encode_value,
    parse_timestamp,
    split_server_timestamps,
)
from portal_sync.domain.errors import AuthExpiredError, StoreReadError, StoreWriteError
from portal_sync.domain.models.store_document import (
    ChangeKind,
    Document,
    DocumentChange,
    Snapshot,
    StoreQuery,
)
from portal_sync.domain.models.subscription import Subscription
from portal_sync.domain.ports.remote_status_store import RemoteStatusStore, SnapshotListener

if TYPE_CHECKING:
    from aiohttp import ClientResponse, ClientSession

    from portal_sync.domain.ports.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

FIRESTORE_API_URL = "https://firestore.googleapis.com/v1"


def _check_auth(response: ClientResponse) -> None:
    if response.status == 401:
        raise AuthExpiredError("Firestore rejected the ID token (401)")


class FirestoreRestStore(RemoteStatusStore):
    """Remote status store backed by Cloud Firestore over REST."""

    def __init__(
        self,
        session: ClientSession,
        project_id: str,
        scheduler: Scheduler,
        database: str = "(default)",
        id_token: str | None = None,
        poll_interval_seconds: float = 5,
        api_url: str = FIRESTORE_API_URL,
    ) -> None:
        """Initialize the adapter.

        Args:
            session: aiohttp session used for every request.
            project_id: Firebase project id.
            scheduler: Drives subscription polling.
            database: Firestore database id.
            id_token: Firebase ID token sent as bearer credentials.
            poll_interval_seconds: How often subscriptions re-read their target.
            api_url: Base URL of the REST API.
        """
        self._session = session
        self._scheduler = scheduler
        self._poll_interval_seconds = poll_interval_seconds
        self.id_token = id_token
        self._database_path = f"projects/{project_id}/databases/{database}"
        self._documents_url = f"{api_url}/{self._database_path}/documents"

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.id_token:
            headers["authorization"] = f"Bearer {self.id_token}"
        return headers

    def _name(self, key: str) -> str:
        return f"{self._database_path}/documents/{key}"

    def _key(self, name: str) -> str:
        return name.split("/documents/", 1)[1]

    # Reads

    async def get(self, key: str) -> dict[str, Any] | None:
        """Read one record."""
        url = f"{self._documents_url}/{key}"
        try:
            async with self._session.get(url, headers=self._headers()) as response:
                _check_auth(response)
                if response.status == 404:
                    return None
                if response.status != 200:
                    text = await response.text()
                    raise StoreReadError(
                        f"Firestore returned status {response.status} for {key}: {text[:200]}",
                        key=key,
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreReadError(f"Error reading {key}: {e}", key=key) from e
        return decode_fields(data.get("fields", {}))

    async def query(self, query: StoreQuery) -> list[Document]:
        """Run a one-shot structured query."""
        url = f"{self._documents_url}:runQuery"
        body = {"structuredQuery": self._structured_query(query)}
        try:
            async with self._session.post(url, json=body, headers=self._headers()) as response:
                _check_auth(response)
                if response.status != 200:
                    text = await response.text()
                    raise StoreReadError(
                        f"Firestore query on {query.collection} returned status "
                        f"{response.status}: {text[:200]}",
                        key=query.collection,
                    )
                rows = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreReadError(f"Error querying {query.collection}: {e}") from e

        documents = []
        for row in rows:
            doc = row.get("document") if isinstance(row, dict) else None
            if not doc:
                continue
            documents.append(
                Document(key=self._key(doc["name"]), data=decode_fields(doc.get("fields", {})))
            )
        return documents

    @staticmethod
    def _structured_query(query: StoreQuery) -> dict[str, Any]:
        filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": field_name},
                    "op": "EQUAL",
                    "value": encode_value(value),
                }
            }
            for field_name, value in query.equals.items()
        ]
        if query.array_contains is not None:
            field_name, value = query.array_contains
            filters.append(
                {
                    "fieldFilter": {
                        "field": {"fieldPath": field_name},
                        "op": "ARRAY_CONTAINS",
                        "value": encode_value(value),
                    }
                }
            )

        structured: dict[str, Any] = {"from": [{"collectionId": query.collection}]}
        if len(filters) == 1:
            structured["where"] = filters[0]
        elif filters:
            structured["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}
        return structured

    # Writes

    def _update_write(
        self, key: str, data: dict[str, Any], merge: bool, exists: bool | None = None
    ) -> dict[str, Any]:
        plain, transforms = split_server_timestamps(data)
        write: dict[str, Any] = {"update": {"name": self._name(key), "fields": encode_fields(plain)}}
        if merge:
            write["updateMask"] = {"fieldPaths": sorted(plain)}
        if transforms:
            write["updateTransforms"] = [
                {"fieldPath": field_name, "setToServerValue": "REQUEST_TIME"}
                for field_name in transforms
            ]
        if exists is not None:
            write["currentDocument"] = {"exists": exists}
        return write

    async def _commit(self, writes: list[dict[str, Any]], key: str) -> dict[str, Any]:
        url = f"{self._documents_url}:commit"
        try:
            async with self._session.post(
                url, json={"writes": writes}, headers=self._headers()
            ) as response:
                _check_auth(response)
                if response.status != 200:
                    text = await response.text()
                    raise StoreWriteError(
                        f"Firestore commit for {key} returned status {response.status}: "
                        f"{text[:200]}",
                        key=key,
                    )
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreWriteError(f"Error committing write for {key}: {e}", key=key) from e

    async def set(self, key: str, partial: dict[str, Any], merge: bool = True) -> None:
        """Write a record, merging into the existing one when ``merge`` is True."""
        await self._commit([self._update_write(key, partial, merge)], key)

    async def add(self, collection: str, data: dict[str, Any]) -> Document:
        """Create a record with a client-generated random id."""
        key = f"{collection}/{uuid.uuid4().hex[:20]}"
        result = await self._commit([self._update_write(key, data, merge=False, exists=False)], key)
        _, transforms = split_server_timestamps(data)
        stored = {k: v for k, v in data.items() if k not in transforms}
        commit_time = result.get("commitTime")
        if commit_time:
            # REQUEST_TIME transforms resolve to the commit time
            resolved = parse_timestamp(commit_time)
            stored.update({field_name: resolved for field_name in transforms})
        return Document(key=key, data=stored)

    async def delete(self, key: str) -> None:
        """Delete a record."""
        await self._commit([{"delete": self._name(key)}], key)

    async def batch_update(self, updates: list[tuple[str, dict[str, Any]]]) -> None:
        """Apply partial updates to existing records in one atomic commit."""
        if not updates:
            return
        writes = [self._update_write(key, partial, merge=True, exists=True) for key, partial in updates]
        await self._commit(writes, updates[0][0])
        logger.debug(f"Committed batch of {len(writes)} updates")

    # Subscriptions

    def subscribe(self, target: str | StoreQuery, listener: SnapshotListener) -> Subscription:
        """Poll a key or query and push diffs to ``listener``."""
        poller = _SnapshotPoller(self, target, listener)
        handles: list[TimerHandle] = [
            self._scheduler.schedule_once(0, poller.poll),
            self._scheduler.schedule_repeating(self._poll_interval_seconds, poller.poll),
        ]

        def _stop() -> None:
            poller.stopped = True
            for handle in handles:
                self._scheduler.cancel(handle)

        return Subscription(_stop, name=f"firestore:{target}")


class _SnapshotPoller:
    """Re-reads one subscription target and turns differences into changes."""

    def __init__(
        self, store: FirestoreRestStore, target: str | StoreQuery, listener: SnapshotListener
    ) -> None:
        self.store = store
        self.target = target
        self.listener = listener
        self.stopped = False
        self._known: dict[str, dict[str, Any]] = {}
        self._polled = False

    async def _read(self) -> list[Document]:
        if isinstance(self.target, StoreQuery):
            return await self.store.query(self.target)
        data = await self.store.get(self.target)
        return [Document(key=self.target, data=data)] if data is not None else []

    async def poll(self) -> None:
        if self.stopped:
            return
        try:
            documents = await self._read()
        except (StoreReadError, AuthExpiredError) as e:
            logger.warning(f"Polling {self.target} failed: {e}")
            self._emit(Snapshot(error=e))
            return

        current = {d.key: d.data for d in documents}
        changes: list[DocumentChange] = []
        for document in documents:
            previous = self._known.get(document.key)
            if previous is None:
                changes.append(DocumentChange(ChangeKind.ADDED, document))
            elif previous != document.data:
                changes.append(DocumentChange(ChangeKind.MODIFIED, document))
        for key in self._known.keys() - current.keys():
            changes.append(DocumentChange(ChangeKind.REMOVED, Document(key=key, data={})))
        first_poll = not self._polled
        self._polled = True
        self._known = current
        if changes or first_poll:
            self._emit(Snapshot(changes=changes, documents=documents))

    def _emit(self, snapshot: Snapshot) -> None:
        if self.stopped:
            return
        try:
            self.listener(snapshot)
        except Exception as e:
            logger.error(f"Snapshot listener for {self.target} failed: {e}", exc_info=True)
