"""
Deferred callbacks.

The engine is single-threaded and event driven; the only asynchronous
pieces are the history manager's re-entrancy guard reset and the builder's
position-update debounce. Both go through a Scheduler so hosts (and tests)
decide how "later" is implemented.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional


class ScheduledCall(ABC):
    """Handle to a pending callback."""

    @abstractmethod
    def cancel(self) -> None:
        pass


class Scheduler(ABC):
    """Runs a callback once after a delay (seconds)."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        pass


class _TimerCall(ScheduledCall):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """Default scheduler: one daemon threading.Timer per call."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return _TimerCall(timer)


class _HandleCall(ScheduledCall):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Schedules on an asyncio event loop (the running loop by default)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        loop = self._loop or asyncio.get_running_loop()
        return _HandleCall(loop.call_later(delay, callback))


__all__ = ["ScheduledCall", "Scheduler", "ThreadingScheduler", "AsyncioScheduler"]
