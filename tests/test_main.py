"""Tests for the entry point wiring."""

from unittest.mock import MagicMock

import pytest

from portal_sync.adapters.config import AppConfig
from portal_sync.adapters.store import FirestoreRestStore, InMemoryStatusStore
from portal_sync.adapters.timers import VirtualScheduler
from portal_sync.domain.models import Role
from portal_sync.main import build_settings, build_store, parse_args


def test_build_settings_copies_config() -> None:
    """Given a config, when building session settings, then tunables are carried over."""
    config = AppConfig.for_testing(heartbeat_interval_seconds=10, messages_collection="chat")

    settings = build_settings(config)

    assert settings.heartbeat_interval_seconds == 10
    assert settings.messages_collection == "chat"
    assert settings.status_collection(Role.OPERATOR) == "adminStatus"


def test_build_store_defaults_to_memory() -> None:
    """Given the memory backend, when building the store, then an in-memory store is returned."""
    store = build_store(AppConfig.for_testing(), MagicMock(), VirtualScheduler())

    assert isinstance(store, InMemoryStatusStore)


def test_build_store_firestore_requires_project() -> None:
    """Given the firestore backend without a project, when building the store, then ValueError is raised."""
    config = AppConfig.for_testing(store_backend="firestore")

    with pytest.raises(ValueError, match="FIRESTORE_PROJECT_ID"):
        build_store(config, MagicMock(), VirtualScheduler())


def test_build_store_firestore() -> None:
    """Given the firestore backend with a project, when building the store, then the REST store is returned."""
    config = AppConfig.for_testing(store_backend="firestore", firestore_project_id="school-portal")

    store = build_store(config, MagicMock(), VirtualScheduler())

    assert isinstance(store, FirestoreRestStore)


def test_parse_args() -> None:
    """Given command line arguments, when parsing, then owner, role and name are read."""
    args = parse_args(["--owner", "op1", "--role", "operator", "--name", "Org Admin"])

    assert (args.owner, args.role, args.name) == ("op1", "operator", "Org Admin")
    assert parse_args(["--owner", "m1"]).role == "member"
