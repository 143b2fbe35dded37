"""Adapters layer - store backends, timers, auth, lifecycle and configuration."""

from portal_sync.adapters.auth import LocalAuthState
from portal_sync.adapters.config import AppConfig
from portal_sync.adapters.lifecycle import AppLifecycleEmitter
from portal_sync.adapters.store import FirestoreRestStore, InMemoryStatusStore
from portal_sync.adapters.timers import AsyncioScheduler, VirtualScheduler

__all__ = [
    "AppConfig",
    "AppLifecycleEmitter",
    "AsyncioScheduler",
    "FirestoreRestStore",
    "InMemoryStatusStore",
    "LocalAuthState",
    "VirtualScheduler",
]
