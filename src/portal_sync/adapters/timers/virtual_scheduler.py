"""Virtual-clock scheduler for deterministic timing.

Time only moves when :meth:`VirtualScheduler.advance` is awaited; due timers fire
in time order (then in scheduling order) and their callbacks are awaited before
the clock moves on.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from portal_sync.domain.ports.scheduler import Scheduler

if TYPE_CHECKING:
    from portal_sync.domain.ports.scheduler import TimerCallback

logger = logging.getLogger(__name__)

DEFAULT_EPOCH = datetime(2025, 1, 6, 8, 0, tzinfo=UTC)


class VirtualTimer:
    """Timer living on a virtual clock."""

    def __init__(
        self, due: datetime, interval: timedelta | None, callback: TimerCallback, seq: int
    ) -> None:
        self.due = due
        self.interval = interval
        self.callback = callback
        self.seq = seq
        self._cancelled = False
        self.fired = 0

    @property
    def cancelled(self) -> bool:
        """Whether the timer was cancelled."""
        return self._cancelled

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def mark_cancelled(self) -> None:
        self._cancelled = True


class VirtualScheduler(Scheduler):
    """Scheduler whose clock is advanced explicitly."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or DEFAULT_EPOCH
        self._timers: list[VirtualTimer] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        """Current virtual time."""
        return self._now

    @property
    def active_timers(self) -> list[VirtualTimer]:
        """Timers that are still scheduled."""
        return [t for t in self._timers if not t.cancelled]

    def schedule_repeating(self, interval_seconds: float, callback: TimerCallback) -> VirtualTimer:
        """Run ``callback`` every ``interval_seconds`` of virtual time."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        interval = timedelta(seconds=interval_seconds)
        timer = VirtualTimer(self._now + interval, interval, callback, next(self._seq))
        self._timers.append(timer)
        return timer

    def schedule_once(self, delay_seconds: float, callback: TimerCallback) -> VirtualTimer:
        """Run ``callback`` once after ``delay_seconds`` of virtual time."""
        timer = VirtualTimer(
            self._now + timedelta(seconds=max(delay_seconds, 0)), None, callback, next(self._seq)
        )
        self._timers.append(timer)
        return timer

    def cancel(self, handle: VirtualTimer | None) -> None:  # type: ignore[override]
        """Cancel a timer."""
        if handle is None or handle.cancelled:
            return
        handle.mark_cancelled()
        self._timers = [t for t in self._timers if t is not handle]

    async def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that comes due.

        Returns:
            Number of timer callbacks that ran.
        """
        target = self._now + timedelta(seconds=seconds)
        fired = 0
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._now = timer.due
            if timer.interval is not None:
                timer.due = timer.due + timer.interval
            else:
                self.cancel(timer)
            timer.fired += 1
            fired += 1
            try:
                await timer.callback()
            except Exception as e:
                logger.error(f"Virtual timer callback failed: {e}", exc_info=True)
            await self._yield()
        self._now = target
        await self._yield()
        return fired

    @staticmethod
    async def _yield() -> None:
        # Give tasks spawned by callbacks a chance to run at this virtual instant.
        for _ in range(3):
            await asyncio.sleep(0)
