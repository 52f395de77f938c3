"""De-duplicating work queue with delayed requeue and per-key backoff."""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Optional, Set

logger = logging.getLogger(__name__)


class WorkQueue:
    """
    Queue of object names.

    A name is never handed to two workers at once: adding a name that is
    being processed marks it dirty, and it is queued again when the
    current worker calls done(). Adding a name that is already waiting is
    a no-op.
    """

    def __init__(self, base_delay: float = 5.0, max_delay: float = 300.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._cond = threading.Condition()
        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._timers: Dict[str, threading.Timer] = {}
        self._failures: Dict[str, int] = {}
        self._shutting_down = False

    def add(self, key: str) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        """Add the key once delay seconds have passed; a newer delay replaces a pending one."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            pending = self._timers.pop(key, None)
            if pending is not None:
                pending.cancel()
            timer = threading.Timer(delay, self._fire, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, key: str) -> None:
        with self._cond:
            self._timers.pop(key, None)
        self.add(key)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Block until a key is available. Returns None on timeout or shutdown."""
        with self._cond:
            while not self._queue and not self._shutting_down:
                if not self._cond.wait(timeout):
                    return None
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def backoff(self, key: str) -> float:
        """Record a failure for the key and return the delay before the next attempt."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * (2 ** failures), self.max_delay)

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
