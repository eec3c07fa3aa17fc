"""
One-shot timer collaborators.

Timers are only triggers: whoever receives a callback re-checks stored
timestamps before acting, so late, early or duplicate firings are safe.

Implementations:
- ThreadingScheduler: threading.Timer daemons (production)
- ManualScheduler: virtual clock advanced by hand (testing)
"""

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], None]


@runtime_checkable
class Scheduler(Protocol):
    """Abstract one-shot scheduler."""

    def schedule_once(self, delay_seconds: float, callback: TimerCallback) -> Any:
        """Run `callback` once after `delay_seconds`. Returns a cancel handle."""
        ...

    def cancel(self, handle: Any) -> bool:
        """Cancel a pending timer. Returns True if it had not fired yet."""
        ...


class ThreadingScheduler:
    """Schedules callbacks on daemon threading.Timer threads."""

    def __init__(self):
        self._timers: dict[int, threading.Timer] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def schedule_once(self, delay_seconds: float, callback: TimerCallback) -> int:
        handle = next(self._ids)

        def fire() -> None:
            with self._lock:
                self._timers.pop(handle, None)
            try:
                callback()
            except Exception:
                logger.exception("Timer callback %d failed", handle)

        timer = threading.Timer(max(0.0, delay_seconds), fire)
        timer.daemon = True
        with self._lock:
            self._timers[handle] = timer
        timer.start()
        return handle

    def cancel(self, handle: int) -> bool:
        with self._lock:
            timer = self._timers.pop(handle, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def shutdown(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)


class ManualScheduler:
    """
    Virtual-time scheduler for tests.

    now() doubles as the engine clock, so advancing the scheduler moves
    wall-clock time and fires due timers in order.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2026, 1, 5, 9, 0, 0)
        self._queue: list[tuple[datetime, int, TimerCallback]] = []
        self._cancelled: set[int] = set()
        self._ids = itertools.count(1)

    def now(self) -> datetime:
        return self._now

    def schedule_once(self, delay_seconds: float, callback: TimerCallback) -> int:
        handle = next(self._ids)
        due = self._now + timedelta(seconds=max(0.0, delay_seconds))
        heapq.heappush(self._queue, (due, handle, callback))
        return handle

    def cancel(self, handle: int) -> bool:
        if any(h == handle for _, h, _ in self._queue) and handle not in self._cancelled:
            self._cancelled.add(handle)
            return True
        return False

    def advance(self, seconds: float) -> int:
        """Move time forward, firing due timers. Returns how many fired."""
        return self.advance_to(self._now + timedelta(seconds=seconds))

    def advance_to(self, when: datetime) -> int:
        fired = 0
        while self._queue and self._queue[0][0] <= when:
            due, handle, callback = heapq.heappop(self._queue)
            if handle in self._cancelled:
                self._cancelled.discard(handle)
                continue
            self._now = max(self._now, due)
            callback()
            fired += 1
        self._now = max(self._now, when)
        return fired

    def jump(self, seconds: float) -> None:
        """Move time forward without firing anything (a suspended process)."""
        self._now += timedelta(seconds=seconds)

    def pending(self) -> list[datetime]:
        """Due times of timers still waiting to fire."""
        return sorted(due for due, handle, _ in self._queue if handle not in self._cancelled)

    def drop_pending(self) -> None:
        """Forget every pending timer (a process restart)."""
        self._queue.clear()
        self._cancelled.clear()
