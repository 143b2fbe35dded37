"""Read side of presence: who is online and when they were last seen."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from portal_sync.domain.errors import AuthExpiredError, StoreReadError
from portal_sync.domain.models.presence_record import PresenceRecord, PresenceStatus
from portal_sync.domain.models.role import Role
from portal_sync.domain.models.store_document import SERVER_TIMESTAMP, Snapshot, StoreQuery
from portal_sync.domain.models.subscription import Subscription

if TYPE_CHECKING:
    from portal_sync.domain.ports import RemoteStatusStore, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

PresenceListener = Callable[[PresenceStatus], None]

DEFAULT_STALE_AFTER_SECONDS = 120
DEFAULT_RECHECK_INTERVAL_SECONDS = 60


class PresenceDirectory:
    """Maps presence records in the store to what the UI shows.

    An ``isOnline`` flag is only trusted while the record's heartbeat is fresh;
    a tracker that died without going offline therefore shows as offline once
    ``stale_after_seconds`` have passed.
    """

    def __init__(
        self,
        store: RemoteStatusStore,
        scheduler: Scheduler,
        collections: dict[Role, str],
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        display_timezone: str = "Asia/Manila",
        recheck_interval_seconds: float = DEFAULT_RECHECK_INTERVAL_SECONDS,
    ) -> None:
        """Initialize the directory.

        Args:
            store: Remote store holding presence records.
            scheduler: Clock used for freshness checks.
            collections: Presence collection per role.
            stale_after_seconds: Age after which an online record counts as offline.
            display_timezone: IANA timezone for formatted dates.
            recheck_interval_seconds: Staleness re-check period for observed online owners.
        """
        self._store = store
        self._scheduler = scheduler
        self._collections = {Role(role): name for role, name in collections.items()}
        self._stale_after = timedelta(seconds=stale_after_seconds)
        self._timezone = ZoneInfo(display_timezone)
        self._recheck_interval_seconds = recheck_interval_seconds

    def key(self, owner_id: str, role: Role) -> str:
        """Store key of an owner's presence record."""
        return f"{self._collections[Role(role)]}/{owner_id}"

    def _to_status(self, owner_id: str, role: Role, data: dict[str, Any] | None) -> PresenceStatus:
        if data is None:
            return PresenceStatus.unknown(owner_id, role)
        record = PresenceRecord.from_document({"ownerId": owner_id, "role": str(role), **data})
        fresh = (
            record.last_active_at is not None
            and self._scheduler.now() - record.last_active_at <= self._stale_after
        )
        return PresenceStatus(
            owner_id=owner_id,
            role=role,
            is_online=record.is_online and fresh,
            last_seen=record.latest_activity(),
            display_name=record.display_name,
        )

    async def status_of(self, owner_id: str, role: Role) -> PresenceStatus:
        """One-shot read of an owner's presence; unknown if it cannot be read."""
        role = Role(role)
        try:
            data = await self._store.get(self.key(owner_id, role))
        except (StoreReadError, AuthExpiredError) as e:
            logger.warning(f"Could not read presence of {role} {owner_id}: {e}")
            return PresenceStatus.unknown(owner_id, role)
        return self._to_status(owner_id, role, data)

    def presence_of(self, owner_id: str, role: Role, listener: PresenceListener) -> Subscription:
        """Stream an owner's presence to ``listener``, starting with the current state.

        While the owner shows online, the record is re-checked every
        ``recheck_interval_seconds`` so a heartbeat that stops without an offline
        write is pushed as offline once it goes stale.
        """
        role = Role(role)
        data: dict[str, Any] | None = None
        current: PresenceStatus | None = None
        timer: TimerHandle | None = None

        def _push(status: PresenceStatus) -> None:
            nonlocal current, timer
            current = status
            if status.is_online and timer is None:
                timer = self._scheduler.schedule_repeating(self._recheck_interval_seconds, _recheck)
            elif not status.is_online and timer is not None:
                self._scheduler.cancel(timer)
                timer = None
            listener(status)

        async def _recheck() -> None:
            status = self._to_status(owner_id, role, data)
            if status != current:
                logger.debug(f"Presence of {role} {owner_id} went stale")
                _push(status)

        def _on_snapshot(snapshot: Snapshot) -> None:
            nonlocal data
            if snapshot.error is not None:
                logger.warning(f"Presence stream for {role} {owner_id} failed: {snapshot.error}")
                data = None
                _push(PresenceStatus.unknown(owner_id, role))
                return
            data = snapshot.documents[0].data if snapshot.documents else None
            _push(self._to_status(owner_id, role, data))

        records = self._store.subscribe(self.key(owner_id, role), _on_snapshot)

        def _cancel() -> None:
            nonlocal timer
            records.cancel()
            self._scheduler.cancel(timer)
            timer = None

        return Subscription(_cancel, name=f"presence:{role}:{owner_id}")

    async def list_online(self, role: Role) -> list[PresenceStatus]:
        """Owners of ``role`` whose record is online and fresh."""
        role = Role(role)
        try:
            documents = await self._store.query(
                StoreQuery(collection=self._collections[role], equals={"isOnline": True})
            )
        except (StoreReadError, AuthExpiredError) as e:
            logger.warning(f"Could not list online {role}s: {e}")
            return []
        statuses = [self._to_status(d.id, role, d.data) for d in documents]
        return sorted((s for s in statuses if s.is_online), key=lambda s: s.owner_id)

    async def touch_last_seen(
        self, owner_id: str, role: Role, display_name: str | None = None
    ) -> None:
        """Record that an owner was just seen, without touching ``isOnline``.

        Raises:
            StoreWriteError: If the write fails.
        """
        role = Role(role)
        partial: dict[str, Any] = {
            "ownerId": owner_id,
            "role": str(role),
            "lastSeenAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        if display_name:
            partial["displayName"] = display_name
        await self._store.set(self.key(owner_id, role), partial, merge=True)
        logger.debug(f"Updated last seen for {role} {owner_id}")

    def format_last_seen(self, last_seen: datetime | None, now: datetime | None = None) -> str:
        """Human-readable "last seen" text.

        Args:
            last_seen: Time the owner was last seen.
            now: Reference time; the scheduler's clock if omitted.

        Returns:
            "just now", "N minutes ago", "N hours ago", or a short date such as
            "Jul 18" in the display timezone. "recently" when unknown.
        """
        if last_seen is None:
            return "recently"
        now = now or self._scheduler.now()
        seconds = int((now - last_seen).total_seconds())
        if seconds < 60:
            return "just now"
        if seconds < 3600:
            return f"{seconds // 60} minutes ago"
        if seconds < 86400:
            return f"{seconds // 3600} hours ago"
        local = last_seen.astimezone(self._timezone)
        return f"{local:%b} {local.day}"
