"""Shared fixtures: a virtual clock, an in-memory store and a signed-in member."""

import pytest

from portal_sync.adapters.auth import LocalAuthState
from portal_sync.adapters.store import InMemoryStatusStore
from portal_sync.adapters.timers import VirtualScheduler


@pytest.fixture
def scheduler() -> VirtualScheduler:
    """Virtual clock starting at the default epoch."""
    return VirtualScheduler()


@pytest.fixture
def store(scheduler: VirtualScheduler) -> InMemoryStatusStore:
    """Empty in-memory store stamping commits with the virtual clock."""
    return InMemoryStatusStore(scheduler)


@pytest.fixture
def auth() -> LocalAuthState:
    """Auth session signed in as ``member_1``."""
    return LocalAuthState("member_1")
