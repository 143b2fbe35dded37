"""Timer abstraction port."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    """Handle to a scheduled timer."""

    @property
    def cancelled(self) -> bool:
        """Whether the timer was cancelled."""
        ...


class Scheduler(Protocol):
    """Port for clocks and cancellable timers.

    Implementations exist for the wall clock and for a virtual clock used in tests.
    """

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        ...

    def schedule_repeating(self, interval_seconds: float, callback: TimerCallback) -> TimerHandle:
        """Run ``callback`` every ``interval_seconds``, first after one interval."""
        ...

    def schedule_once(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        """Run ``callback`` once after ``delay_seconds``."""
        ...

    def cancel(self, handle: TimerHandle | None) -> None:
        """Cancel a timer; cancelling None or an already cancelled timer is a no-op."""
        ...
