"""
Transient confirmation notifications (the "added to cart" toast).
"""
from typing import Callable, List, Optional

from course_shop.config import Config
from course_shop.scheduling import ScheduledTask, Scheduler

Listener = Callable[[Optional[str]], None]


class NotificationCenter:
    """Holds at most one visible message; a new one replaces the old"""

    def __init__(self, scheduler: Scheduler, duration_ms: int = Config.NOTIFICATION_DURATION_MS):
        self.scheduler = scheduler
        self.duration_ms = duration_ms
        self.current: Optional[str] = None
        self._hide_task: Optional[ScheduledTask] = None
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _publish(self) -> None:
        for listener in self._listeners:
            listener(self.current)

    def show(self, message: str) -> None:
        if self._hide_task is not None:
            self._hide_task.cancel()
        self.current = message
        self._hide_task = self.scheduler.call_later(self.duration_ms, self.hide, name="notification.hide")
        self._publish()

    def hide(self) -> None:
        self.current = None
        self._hide_task = None
        self._publish()

    def close(self) -> None:
        if self._hide_task is not None:
            self._hide_task.cancel()
            self._hide_task = None
