"""Scheduler adapters."""

from portal_sync.adapters.timers.asyncio_scheduler import AsyncioScheduler, AsyncioTimer
from portal_sync.adapters.timers.virtual_scheduler import VirtualScheduler, VirtualTimer

__all__ = ["AsyncioScheduler", "AsyncioTimer", "VirtualScheduler", "VirtualTimer"]
