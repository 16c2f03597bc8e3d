"""
FlushCoordinator — drains the record store to the network.

Each pending record gets one upload per flush. A record is deleted only after
the server confirmed it; failures stay in the store for the next flush. A
record that is still in flight from an earlier flush is skipped, so the same
record is never uploaded twice at once.

Triggering depends on the flushing mode (manual / automatic / periodic /
immediate); see ``flushing_mode``.
"""

import threading

from .config import log
from .errors import NotFoundError, PersistenceError
from .models import FlushingKind, FlushingMode, PendingEventRecord


class _Batch:
    """Counts outstanding uploads and fires on_complete exactly once."""

    def __init__(self, size, on_complete):
        self._remaining = size
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self.succeeded = 0
        self.failed = 0

    def done(self, ok):
        with self._lock:
            if ok:
                self.succeeded += 1
            else:
                self.failed += 1
            self._remaining -= 1
            finished = self._remaining == 0
        if finished:
            log.info("Flush finished: %d uploaded, %d failed", self.succeeded, self.failed)
            _call(self._on_complete)


def _call(on_complete):
    if on_complete is None:
        return
    try:
        on_complete()
    except Exception as e:
        log.error("Flush completion callback raised: %s", e, exc_info=True)


class FlushCoordinator:

    def __init__(self, database, repository, scheduler, flushing_mode=None):
        self._database = database
        self._repository = repository
        self._scheduler = scheduler
        self._lock = threading.RLock()
        self._in_flight = set()
        self._timer = None
        self._foreground = True
        self._flushing_mode = flushing_mode or FlushingMode.automatic()
        self._update_flushing_mode()

    # ─── Flushing mode ───────────────────────────────────────────

    @property
    def flushing_mode(self):
        return self._flushing_mode

    @flushing_mode.setter
    def flushing_mode(self, mode):
        with self._lock:
            self._flushing_mode = mode
            log.info("Flushing mode updated to: %s", mode)
            self._update_flushing_mode()
        if mode.kind is FlushingKind.IMMEDIATE:
            self.flush()

    def _update_flushing_mode(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            mode = self._flushing_mode
            if mode.kind is FlushingKind.PERIODIC and self._foreground:
                self._timer = self._scheduler.schedule_repeating(
                    mode.interval, self.flush, name="periodic-flush",
                )

    # ─── Triggers ────────────────────────────────────────────────

    def on_track(self):
        if self._flushing_mode.kind is FlushingKind.IMMEDIATE:
            self.flush()

    def on_foreground(self):
        with self._lock:
            self._foreground = True
            if self._timer is None:
                self._update_flushing_mode()

    def on_background(self, on_complete=None):
        """Stop the periodic timer; flush right away in automatic mode."""
        with self._lock:
            self._foreground = False
            self._update_flushing_mode()
        if self._flushing_mode.kind is FlushingKind.AUTOMATIC:
            self.flush(on_complete)
        else:
            _call(on_complete)

    def flush_if_needed(self, on_complete=None):
        """Flush unless the mode is manual. on_complete fires either way."""
        if self._flushing_mode.kind is FlushingKind.MANUAL:
            log.debug("Manual flushing mode — skipping automatic flush")
            _call(on_complete)
            return
        self.flush(on_complete)

    # ─── Flush ───────────────────────────────────────────────────

    def flush(self, on_complete=None):
        """Upload every pending record. Returns immediately; completion via on_complete."""
        try:
            customers = self._database.list_customer_updates()
            events = self._database.list_events()
        except PersistenceError as e:
            log.error("Flush aborted, cannot read pending records: %s", e)
            _call(on_complete)
            return

        with self._lock:
            customers = [c for c in customers if c.id not in self._in_flight]
            events = [e for e in events if e.id not in self._in_flight]
            self._in_flight.update(r.id for r in customers)
            self._in_flight.update(r.id for r in events)

        log.info(
            "Flushing data: %d total objects to upload, %d events and %d customer updates",
            len(events) + len(customers), len(events), len(customers),
        )
        if not customers and not events:
            _call(on_complete)
            return

        try:
            customer_ids = self._database.current_customer_identifiers()
        except PersistenceError as e:
            log.error("Flush aborted, cannot read customer identifiers: %s", e)
            with self._lock:
                self._in_flight.difference_update(r.id for r in customers + events)
            _call(on_complete)
            return

        batch = _Batch(len(customers) + len(events), on_complete)
        for record in customers:
            self._upload(self._repository.upload_customer_update, record, customer_ids, batch)
        for record in events:
            self._upload(self._repository.upload_event, record, customer_ids, batch)

    def _upload(self, upload, record, customer_ids, batch):
        answered = threading.Event()

        def callback(error):
            if answered.is_set():
                log.warning("Duplicate upload callback for %s ignored", record.id)
                return
            answered.set()
            self._on_uploaded(record, error, batch)

        try:
            upload(record.fragments, customer_ids, callback)
        except Exception as e:
            log.error("Upload dispatch for %s failed: %s", record.id, e)
            callback(e)

    def _on_uploaded(self, record, error, batch):
        what = "event" if isinstance(record, PendingEventRecord) else "customer update"
        try:
            if error is not None:
                log.warning("Failed to upload %s %s, keeping it for next flush: %s", what, record.id, error)
                return
            log.debug("Successfully uploaded %s: %s", what, record.id)
            try:
                self._database.delete(record)
            except NotFoundError:
                log.warning("Uploaded %s %s was already removed", what, record.id)
            except PersistenceError as e:
                log.error("Failed to remove %s %s from database: %s", what, record.id, e)
        finally:
            with self._lock:
                self._in_flight.discard(record.id)
            batch.done(error is None)
