"""
Cancellable scheduled work — one-shot work items and repeating tasks.

A WorkItem runs at most once. cancel() only has an effect while the item is
still pending: once it has started, cancelling is a no-op, and cancelling
twice is a no-op too. Callers keep one handle per purpose and replace it on
reconfiguration.
"""

import threading

from .config import log

PENDING = "pending"
RUNNING = "running"
DONE = "done"
CANCELLED = "cancelled"


class WorkItem:

    def __init__(self, fn, name=""):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "work")
        self._state = PENDING
        self._lock = threading.Lock()
        self._on_cancel = None

    @property
    def state(self):
        return self._state

    @property
    def pending(self):
        return self._state == PENDING

    def perform(self):
        with self._lock:
            if self._state != PENDING:
                return False
            self._state = RUNNING
        try:
            self._fn()
        except Exception as e:
            log.error("Scheduled work %r failed: %s", self.name, e, exc_info=True)
        finally:
            self._state = DONE
        return True

    def cancel(self):
        """Cancel if still pending. Returns True when this call prevented the run."""
        with self._lock:
            if self._state != PENDING:
                return False
            self._state = CANCELLED
            on_cancel = self._on_cancel
        if on_cancel is not None:
            on_cancel()
        return True


class RepeatingTask:
    """Re-arms a one-shot item after each run until cancelled."""

    def __init__(self, scheduler, interval, fn, name=""):
        self._scheduler = scheduler
        self.interval = interval
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "repeating")
        self._lock = threading.Lock()
        self._cancelled = False
        self._current = None

    def start(self):
        self._arm()
        return self

    def _arm(self):
        with self._lock:
            if self._cancelled:
                return
            self._current = self._scheduler.schedule_once(self.interval, self._tick, name=self.name)

    def _tick(self):
        try:
            self._fn()
        finally:
            self._arm()

    @property
    def cancelled(self):
        return self._cancelled

    def cancel(self):
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            current = self._current
            self._current = None
        if current is not None:
            current.cancel()
        return True


class Scheduler:
    """Base scheduler. Subclasses provide schedule_once()."""

    def schedule_once(self, delay, fn, name=""):
        raise NotImplementedError

    def schedule_repeating(self, interval, fn, name=""):
        return RepeatingTask(self, interval, fn, name=name).start()


class ThreadScheduler(Scheduler):
    """Runs work on daemon timer threads."""

    def schedule_once(self, delay, fn, name=""):
        item = WorkItem(fn, name)
        timer = threading.Timer(max(delay, 0), item.perform)
        timer.daemon = True
        item._on_cancel = timer.cancel
        timer.start()
        log.debug("Scheduled %r in %.1fs", item.name, delay)
        return item
