"""Heartbeat-driven presence tracking for one (owner, role)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from portal_sync.domain.contracts.presence_tracker import PresenceTrackerProtocol
from portal_sync.domain.errors import AuthExpiredError, StoreWriteError
from portal_sync.domain.models.app_lifecycle_state import AppLifecycleState
from portal_sync.domain.models.role import Role
from portal_sync.domain.models.store_document import SERVER_TIMESTAMP
from portal_sync.domain.models.subscription import SubscriptionRegistry

if TYPE_CHECKING:
    from datetime import datetime

    from portal_sync.domain.ports import (
        AuthState,
        LifecycleSource,
        RemoteStatusStore,
        Scheduler,
        TimerHandle,
    )

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 30
DEFAULT_BACKGROUND_TIMEOUT_SECONDS = 60 * 60


class HeartbeatPresenceTracker(PresenceTrackerProtocol):
    """Keeps one owner's presence record alive while their session is active.

    The tracker is a small state machine: ``offline`` until :meth:`initialize`
    writes the first online record, ``online`` while heartbeats run, and back to
    ``offline`` on :meth:`force_offline` (logout, background timeout or auth loss).
    The ``is_online`` check in :meth:`initialize` is the only guard against a
    second activation, which is enough for one tracker per logged-in session.
    """

    def __init__(
        self,
        owner_id: str,
        role: Role,
        store: RemoteStatusStore,
        auth: AuthState,
        scheduler: Scheduler,
        status_collection: str,
        lifecycle: LifecycleSource | None = None,
        display_name: str | None = None,
        heartbeat_interval_seconds: float = DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
        background_timeout_seconds: float = DEFAULT_BACKGROUND_TIMEOUT_SECONDS,
        remove_record_on_offline: bool = False,
    ) -> None:
        """Initialize the tracker.

        Args:
            owner_id: Id of the user whose presence is tracked.
            role: Role the owner is signed in as.
            store: Remote store holding presence records.
            auth: Auth session the tracker is bound to.
            scheduler: Clock and timers.
            status_collection: Collection of presence records for ``role``.
            lifecycle: Optional source of app lifecycle transitions.
            display_name: Name written alongside the record.
            heartbeat_interval_seconds: Interval between heartbeat writes.
            background_timeout_seconds: Grace period in background before going offline.
            remove_record_on_offline: Delete the record after marking it offline.
        """
        self.owner_id = owner_id
        self.role = Role(role)
        self.key = f"{status_collection}/{owner_id}"
        self._store = store
        self._auth = auth
        self._scheduler = scheduler
        self._lifecycle = lifecycle
        self._display_name = display_name
        self._heartbeat_interval_seconds = heartbeat_interval_seconds
        self._background_timeout_seconds = background_timeout_seconds
        self._remove_record_on_offline = remove_record_on_offline

        self._online = False
        self._last_active_at: datetime | None = None
        self._heartbeat: TimerHandle | None = None
        self._background_timer: TimerHandle | None = None
        self._subscriptions = SubscriptionRegistry()
        self._cleaned_up = False

    def __repr__(self) -> str:
        state = "online" if self._online else "offline"
        return f"HeartbeatPresenceTracker({self.role}:{self.owner_id}, {state})"

    @property
    def is_online(self) -> bool:
        """Whether the owner is currently marked online by this tracker."""
        return self._online

    @property
    def last_active_at(self) -> datetime | None:
        """Scheduler time of the last successful online write."""
        return self._last_active_at

    @property
    def has_timers(self) -> bool:
        """Whether a heartbeat or background timer is outstanding."""
        return self._heartbeat is not None or self._background_timer is not None

    def _session_valid(self) -> bool:
        return self._auth.current_user_id() == self.owner_id

    def _record(self, is_online: bool) -> dict[str, Any]:
        record: dict[str, Any] = {
            "ownerId": self.owner_id,
            "role": str(self.role),
            "isOnline": is_online,
            "lastActiveAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        if self._display_name is not None:
            record["displayName"] = self._display_name
        return record

    async def _write_online(self) -> bool:
        """Write the online record; failures are left to the next heartbeat tick."""
        try:
            await self._store.set(self.key, self._record(True), merge=True)
        except AuthExpiredError:
            logger.warning(f"Session expired during heartbeat for {self.key}, cleaning up")
            await self.cleanup()
            return False
        except StoreWriteError as e:
            logger.warning(f"Presence write failed for {self.key}, will retry on next tick: {e}")
            return False
        self._last_active_at = self._scheduler.now()
        return True

    async def initialize(self) -> bool:
        """Go online and start heartbeats.

        Returns:
            True if this call brought the owner online, False if it was a no-op.
        """
        if self._online:
            logger.debug(f"Presence for {self.key} already online, skipping initialize")
            return False
        if not self._session_valid():
            logger.info(f"No authenticated session for {self.owner_id}, cannot go online")
            return False

        logger.info(f"Setting {self.role} {self.owner_id} online")
        # Flip state before the first await so concurrent calls see it
        self._online = True
        self._cleaned_up = False

        self._heartbeat = self._scheduler.schedule_repeating(
            self._heartbeat_interval_seconds, self._on_heartbeat
        )
        self._subscriptions.dispose()
        self._subscriptions.add(self._auth.subscribe(self._on_auth_change))
        if self._lifecycle is not None:
            self._subscriptions.add(self._lifecycle.subscribe(self.on_app_lifecycle_change))

        if await self._write_online():
            logger.info(f"{self.role} {self.owner_id} is online")
        return self._online

    async def _on_heartbeat(self) -> None:
        if not self._online:
            return
        if not self._session_valid():
            logger.info(f"Auth session for {self.owner_id} is gone, stopping heartbeats")
            await self.cleanup()
            return
        if await self._write_online():
            logger.debug(f"Heartbeat written for {self.key}")

    async def _on_auth_change(self, user_id: str | None) -> None:
        if self._online and user_id != self.owner_id:
            logger.info(f"User {self.owner_id} signed out, forcing offline and cleaning up")
            await self.cleanup()

    async def _on_background_timeout(self) -> None:
        self._background_timer = None
        logger.info(
            f"{self.role} {self.owner_id} going offline after "
            f"{self._background_timeout_seconds:.0f}s in background"
        )
        await self.force_offline()

    async def on_app_lifecycle_change(self, state: AppLifecycleState) -> None:
        """React to the app moving between foreground and background."""
        state = AppLifecycleState(state)
        logger.debug(f"App state changed to {state} for {self.key}")

        self._scheduler.cancel(self._background_timer)
        self._background_timer = None

        if state.is_foreground:
            if self._online and self._session_valid():
                await self._write_online()
            return

        if self._online:
            self._background_timer = self._scheduler.schedule_once(
                self._background_timeout_seconds, self._on_background_timeout
            )

    def _cancel_timers(self) -> None:
        self._scheduler.cancel(self._heartbeat)
        self._scheduler.cancel(self._background_timer)
        self._heartbeat = None
        self._background_timer = None

    async def force_offline(self) -> None:
        """Stop all timers and mark the owner offline, best effort.

        Store errors are logged and swallowed; the local state is offline either way.
        """
        if not self._online and not self.has_timers:
            logger.debug(f"Presence for {self.key} already offline")
            return

        self._cancel_timers()
        self._online = False
        logger.info(f"Forcing {self.role} {self.owner_id} offline")

        try:
            await self._store.set(self.key, self._record(False), merge=True)
        except (StoreWriteError, AuthExpiredError) as e:
            logger.error(f"Error forcing {self.key} offline: {e}")

        if self._remove_record_on_offline:
            try:
                await self._store.delete(self.key)
                logger.info(f"Removed presence record {self.key}")
            except (StoreWriteError, AuthExpiredError) as e:
                logger.error(f"Error removing presence record {self.key}: {e}")

    async def cleanup(self) -> None:
        """Go offline and release every timer and listener."""
        if self._cleaned_up:
            logger.debug(f"Presence tracker for {self.key} already cleaned up")
            return
        self._cleaned_up = True
        await self.force_offline()
        disposed = self._subscriptions.dispose()
        self._cancel_timers()
        logger.info(f"Presence tracker for {self.key} cleaned up ({disposed} listeners removed)")
