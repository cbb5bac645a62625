# quizengine/engine/scheduling.py

"""
Timers owned by a single attempt.

The attempt never starts ambient timers of its own: it asks a ``Scheduler``
for delayed calls and keeps the returned handles so that teardown can
cancel them. Tests swap in a manual scheduler to drive time explicitly.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Cancellable(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass


class Scheduler(ABC):

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        """Run ``callback`` once after ``delay`` seconds unless cancelled."""
        pass


class _TimerHandle(Cancellable):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """Daemon ``threading.Timer`` per call."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return _TimerHandle(timer)


class Debouncer:
    """
    Coalesce bursts of ``trigger()`` calls into one ``callback`` run.

    The first trigger arms a call ``delay`` seconds out; triggers while armed
    are absorbed, so during a steady stream of changes the callback runs
    roughly once per ``delay``. ``flush()`` runs a pending call now and
    ``cancel()`` drops it.
    """

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callable[[], None]):
        self._scheduler = scheduler
        self._delay = delay
        self._callback = callback
        self._lock = threading.Lock()
        self._handle: Optional[Cancellable] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        with self._lock:
            if self._handle is not None:
                return
            self._generation += 1
            generation = self._generation
            self._handle = self._scheduler.call_later(self._delay, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A cancelled timer may still fire if it was already running
            if generation != self._generation or self._handle is None:
                return
            self._handle = None
        self._run()

    def flush(self) -> None:
        with self._lock:
            if self._handle is None:
                return
            self._handle.cancel()
            self._handle = None
            self._generation += 1
        self._run()

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._generation += 1

    def _run(self) -> None:
        try:
            self._callback()
        except Exception as e:
            # Fire-and-forget: a failed run must not break the caller's thread
            logger.error(f"Debounced callback failed: {e}")
