"""
Timers for coalescing notifications.

All delayed work in the engine (change-notification debounce, view-sync grace
period) goes through a :class:`Scheduler` so it can run on the asyncio loop in
production and on a manually advanced clock in tests.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Protocol, Tuple

from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopScheduler:
    """Schedules on the running asyncio loop (or the one given)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class _ManualHandle:
    def __init__(self, when: float):
        self.when = when
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual clock. Nothing runs until :meth:`advance` moves time forward.

    Callbacks due at the same instant run in scheduling order.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + max(0.0, delay))
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle, callback))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock and run everything that came due. Returns the count run."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle, callback = heapq.heappop(self._queue)
            self.now = when
            if handle.cancelled:
                continue
            callback()
            ran += 1
        self.now = target
        return ran

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)


class Debouncer:
    """
    Trailing-edge debounce of a no-argument callback.

    Every :meth:`trigger` restarts the window; the callback runs once the
    window elapses without another trigger. :meth:`flush` runs a pending call
    immediately.
    """

    def __init__(self, callback: Callable[[], Any], delay_s: float, scheduler: Scheduler):
        self._callback = callback
        self.delay_s = delay_s
        self._scheduler = scheduler
        self._handle: Optional[TimerHandle] = None
        self.fire_count = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._scheduler.call_later(self.delay_s, self._fire)

    def flush(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.fire_count += 1
        self._callback()
