"""Wall-clock scheduler backed by asyncio tasks."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from portal_sync.domain.ports.scheduler import Scheduler

if TYPE_CHECKING:
    from portal_sync.domain.ports.scheduler import TimerCallback

logger = logging.getLogger(__name__)


class AsyncioTimer:
    """Timer running as an asyncio task."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.task: asyncio.Task | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        """Whether the timer was cancelled."""
        return self._cancelled

    def mark_cancelled(self) -> None:
        self._cancelled = True


class AsyncioScheduler(Scheduler):
    """Schedules timers on the running event loop."""

    def __init__(self) -> None:
        self._timers: set[AsyncioTimer] = set()

    def now(self) -> datetime:
        """Current wall-clock time in UTC."""
        return datetime.now(UTC)

    def schedule_repeating(self, interval_seconds: float, callback: TimerCallback) -> AsyncioTimer:
        """Run ``callback`` every ``interval_seconds``."""
        timer = AsyncioTimer(f"repeating:{interval_seconds}s")
        timer.task = asyncio.create_task(self._repeat(timer, interval_seconds, callback))
        self._timers.add(timer)
        return timer

    def schedule_once(self, delay_seconds: float, callback: TimerCallback) -> AsyncioTimer:
        """Run ``callback`` once after ``delay_seconds``."""
        timer = AsyncioTimer(f"once:{delay_seconds}s")
        timer.task = asyncio.create_task(self._once(timer, delay_seconds, callback))
        self._timers.add(timer)
        return timer

    def cancel(self, handle: AsyncioTimer | None) -> None:  # type: ignore[override]
        """Cancel a timer.

        A timer cancelled from inside its own callback is only flagged, so the
        callback can finish its pending I/O.
        """
        if handle is None or handle.cancelled:
            return
        handle.mark_cancelled()
        self._timers.discard(handle)
        if handle.task is not None and handle.task is not asyncio.current_task():
            handle.task.cancel()

    async def close(self) -> None:
        """Cancel every outstanding timer and wait for the tasks to finish."""
        timers = list(self._timers)
        for timer in timers:
            self.cancel(timer)
        tasks = [t.task for t in timers if t.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _repeat(
        self, timer: AsyncioTimer, interval_seconds: float, callback: TimerCallback
    ) -> None:
        try:
            while not timer.cancelled:
                await asyncio.sleep(interval_seconds)
                if timer.cancelled:
                    break
                await self._run_callback(timer, callback)
        except asyncio.CancelledError:
            logger.debug(f"Timer {timer.name} cancelled")
            raise

    async def _once(self, timer: AsyncioTimer, delay_seconds: float, callback: TimerCallback) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            if not timer.cancelled:
                await self._run_callback(timer, callback)
        except asyncio.CancelledError:
            logger.debug(f"Timer {timer.name} cancelled")
            raise
        finally:
            self._timers.discard(timer)

    @staticmethod
    async def _run_callback(timer: AsyncioTimer, callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception as e:
            logger.error(f"Timer {timer.name} callback failed: {e}", exc_info=True)
