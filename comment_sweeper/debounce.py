from __future__ import annotations

import threading
import time
from typing import Callable, Optional

DEFAULT_QUIET_SECONDS = 0.6


class CoalescingTimer:
    """Trailing-edge debouncer driven by an explicit clock.

    Every ``notify`` pushes the deadline to ``now + quiet_seconds``; ``poll``
    fires the callback once when the deadline has passed. Nothing runs on its
    own thread, the owner decides when to poll.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        quiet_seconds: float = DEFAULT_QUIET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.callback = callback
        self.quiet_seconds = max(float(quiet_seconds), 0.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._deadline: Optional[float] = None
        self.notifications = 0
        self.fired = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._deadline is not None

    def notify(self, now: Optional[float] = None) -> None:
        now_value = self._clock() if now is None else now
        with self._lock:
            self._deadline = now_value + self.quiet_seconds
            self.notifications += 1

    def cancel(self) -> None:
        with self._lock:
            self._deadline = None

    def time_until_due(self, now: Optional[float] = None) -> Optional[float]:
        now_value = self._clock() if now is None else now
        with self._lock:
            if self._deadline is None:
                return None
            return max(self._deadline - now_value, 0.0)

    def poll(self, now: Optional[float] = None) -> bool:
        now_value = self._clock() if now is None else now
        with self._lock:
            if self._deadline is None or now_value < self._deadline:
                return False
            self._deadline = None
            self.fired += 1
        self.callback()
        return True


__all__ = ["CoalescingTimer", "DEFAULT_QUIET_SECONDS"]
