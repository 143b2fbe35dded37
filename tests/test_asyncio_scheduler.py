"""Tests for AsyncioScheduler on the real event loop."""

import asyncio
from datetime import UTC

import pytest

from portal_sync.adapters.timers import AsyncioScheduler


@pytest.mark.asyncio
async def test_schedule_once_fires_after_delay() -> None:
    """Given a one-shot timer, when its delay passes, then the callback runs once."""
    scheduler = AsyncioScheduler()
    fired = asyncio.Event()

    async def callback() -> None:
        fired.set()

    scheduler.schedule_once(0.01, callback)

    await asyncio.wait_for(fired.wait(), timeout=1)
    await scheduler.close()


@pytest.mark.asyncio
async def test_repeating_timer_fires_until_cancelled() -> None:
    """Given a repeating timer, when cancelled, then no further callbacks run."""
    scheduler = AsyncioScheduler()
    ticks: list[int] = []

    async def callback() -> None:
        ticks.append(1)

    handle = scheduler.schedule_repeating(0.01, callback)
    while len(ticks) < 3:
        await asyncio.sleep(0.01)
    scheduler.cancel(handle)
    count = len(ticks)
    await asyncio.sleep(0.05)

    assert handle.cancelled is True
    assert len(ticks) == count
    await scheduler.close()


@pytest.mark.asyncio
async def test_timer_cancelling_itself_finishes_callback() -> None:
    """Given a callback that cancels its own timer, when it runs, then it still completes."""
    scheduler = AsyncioScheduler()
    done = asyncio.Event()
    handles = []

    async def callback() -> None:
        scheduler.cancel(handles[0])
        await asyncio.sleep(0)
        done.set()

    handles.append(scheduler.schedule_repeating(0.01, callback))

    await asyncio.wait_for(done.wait(), timeout=1)
    assert handles[0].cancelled is True
    await scheduler.close()


@pytest.mark.asyncio
async def test_close_cancels_outstanding_timers() -> None:
    """Given pending timers, when closing, then none of them fire."""
    scheduler = AsyncioScheduler()
    fired: list[int] = []

    async def callback() -> None:
        fired.append(1)

    handle = scheduler.schedule_once(10, callback)

    await scheduler.close()

    assert handle.cancelled is True
    assert handle.task.done() is True
    assert fired == []


def test_now_is_aware_utc() -> None:
    """Given the wall-clock scheduler, when reading the time, then it is timezone-aware UTC."""
    assert AsyncioScheduler().now().tzinfo is UTC
