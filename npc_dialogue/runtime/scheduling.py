"""
Timers for conversation turns.

The runtime never blocks: each line schedules a callback that advances the
conversation. ``AsyncioScheduler`` runs those callbacks on an event loop,
``ManualScheduler`` runs them when told to (CLI player, tests).
"""

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def now(self) -> float: ...


class AsyncioScheduler:
    """Schedules turn callbacks on an asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)

    def now(self) -> float:
        return self.loop.time()


class _ManualTimer:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """A virtual clock. Timers fire only from ``advance`` or ``run_pending``."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[tuple] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (timer.when, next(self._counter), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def _pop_due(self, until: float) -> Optional[_ManualTimer]:
        while self._queue and self._queue[0][0] <= until:
            _, _, timer = heapq.heappop(self._queue)
            if not timer.cancelled:
                return timer
        return None

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that falls due. Returns the number fired."""
        target = self._now + seconds
        fired = 0
        while True:
            timer = self._pop_due(target)
            if timer is None:
                break
            self._now = max(self._now, timer.when)
            timer.callback()
            fired += 1
        self._now = target
        return fired

    def run_pending(self, limit: int = 10000) -> int:
        """Fire timers in order, jumping the clock to each, until none are left"""
        fired = 0
        while fired < limit:
            timer = self._pop_due(float("inf"))
            if timer is None:
                break
            self._now = max(self._now, timer.when)
            timer.callback()
            fired += 1
        return fired
