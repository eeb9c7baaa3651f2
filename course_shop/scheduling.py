"""
Delayed task scheduling and the clock the stores read time from.

AsyncioScheduler runs callbacks on the event loop; ManualScheduler keeps a
logical clock that tests advance explicitly.
"""
import asyncio
import heapq
import itertools
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle on a pending callback"""

    def __init__(self, callback: Callable[[], None], due: datetime, name: str = ""):
        self.callback = callback
        self.due = due
        self.name = name
        self.cancelled = False
        self.done = False
        self._timer_handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        if not self.pending:
            return
        self.cancelled = True
        if self._timer_handle is not None:
            self._timer_handle.cancel()

    def run(self) -> None:
        if not self.pending:
            return
        self.done = True
        self.callback()


class Scheduler(Protocol):
    def now(self) -> datetime:
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        ...


class AsyncioScheduler:
    """Fire-and-forget delayed callbacks on the running event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        loop = self._loop or asyncio.get_running_loop()
        task = ScheduledTask(callback, self.now() + timedelta(milliseconds=delay_ms), name)
        task._timer_handle = loop.call_later(delay_ms / 1000.0, self._fire, task)
        return task

    def _fire(self, task: ScheduledTask) -> None:
        try:
            task.run()
        except Exception as e:
            # Nothing awaits these tasks, so a failure can only be logged
            logger.error(
                f"Scheduled task failed: {type(e).__name__}: {e}",
                extra={"task": task.name},
                exc_info=True
            )


class ManualScheduler:
    """Logical clock; time only moves when advance() is called"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
        self._queue: List[Tuple[datetime, int, ScheduledTask]] = []
        self._counter = itertools.count()

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        task = ScheduledTask(callback, self._now + timedelta(milliseconds=delay_ms), name)
        heapq.heappush(self._queue, (task.due, next(self._counter), task))
        return task

    def pending(self) -> List[ScheduledTask]:
        return sorted((t for _, _, t in self._queue if t.pending), key=lambda t: t.due)

    def advance(self, ms: float) -> int:
        """Move the clock forward, running every task that falls due. Returns the number run."""
        target = self._now + timedelta(milliseconds=ms)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if not task.pending:
                continue
            self._now = max(self._now, due)
            task.run()
            ran += 1
        self._now = target
        return ran
