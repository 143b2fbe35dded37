"""Ports (interfaces) for the ports-and-adapters architecture."""

from portal_sync.domain.ports.auth_state import AuthListener, AuthState
from portal_sync.domain.ports.lifecycle_source import LifecycleListener, LifecycleSource
from portal_sync.domain.ports.remote_status_store import RemoteStatusStore, SnapshotListener
from portal_sync.domain.ports.scheduler import Scheduler, TimerCallback, TimerHandle

__all__ = [
    "AuthListener",
    "AuthState",
    "LifecycleListener",
    "LifecycleSource",
    "RemoteStatusStore",
    "Scheduler",
    "SnapshotListener",
    "TimerCallback",
    "TimerHandle",
]
