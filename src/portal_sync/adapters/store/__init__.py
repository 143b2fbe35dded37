"""Remote status store adapters."""

from portal_sync.adapters.store.firestore_rest_store import FirestoreRestStore
from portal_sync.adapters.store.in_memory_store import InMemoryStatusStore, WriteRecord

__all__ = ["FirestoreRestStore", "InMemoryStatusStore", "WriteRecord"]
