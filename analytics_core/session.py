"""
SessionManager — session state machine driven by host lifecycle signals.

  foreground  → start a session, or close the old one and start a new one if
                the app was away longer than the session timeout, or carry on
  background  → remember when, and schedule a delayed close after the timeout
  terminate   → close now

The delayed close and a foreground reactivation race for the same session.
Exactly one of them wins: the close work item can only be cancelled while
pending, and a close that already started checks it is still the current one
before touching state.
"""

import threading
import time

from .config import log
from .errors import NoProjectTokenError, PersistenceError
from .models import TrackType
from .state import NO_SESSION


class SessionManager:

    def __init__(self, state, tracker, flusher, scheduler, background,
                 session_timeout, clock=time.time):
        self._state = state
        self._tracker = tracker
        self._flusher = flusher
        self._scheduler = scheduler
        self._background = background
        self.session_timeout = session_timeout
        self._clock = clock
        self._lock = threading.RLock()
        self._close_item = None
        self._close_marker = None
        self._close_release = None

    @property
    def close_pending(self):
        return self._close_item is not None and self._close_item.pending

    # ─── Lifecycle ───────────────────────────────────────────────

    def on_foreground(self):
        with self._lock:
            self._cancel_close()
            try:
                self._reactivate(self._clock())
            except PersistenceError as e:
                log.error("Session state unavailable on foreground: %s", e)

    def on_background(self):
        with self._lock:
            self._cancel_close()
            try:
                self._state.background_time = self._clock()
            except PersistenceError as e:
                log.error("Could not record background time: %s", e)

            release = self._background.acquire()
            marker = object()
            self._close_marker = marker
            self._close_release = release
            self._close_item = self._scheduler.schedule_once(
                self.session_timeout,
                lambda: self._close_after_timeout(marker, release),
                name="session-close",
            )
            log.debug("Session close scheduled in %.1fs", self.session_timeout)

    def on_terminate(self):
        release = self._background.acquire()
        with self._lock:
            self._cancel_close()
            try:
                self._end_session(self._clock())
            except PersistenceError as e:
                log.error("Could not end session on terminate: %s", e)
        self._flusher.flush_if_needed(on_complete=release)

    def on_background_expired(self):
        """Host ran out of background time: drop the pending close."""
        with self._lock:
            item, self._close_item = self._close_item, None
            self._close_marker = None
            self._close_release = None
        if item is not None and item.cancel():
            log.warning("Background time expired before the session close ran")

    # ─── Transitions ─────────────────────────────────────────────

    def _cancel_close(self):
        item, self._close_item = self._close_item, None
        release, self._close_release = self._close_release, None
        self._close_marker = None
        if item is not None and item.cancel():
            log.debug("Pending session close cancelled")
            release()

    def _reactivate(self, now):
        state = self._state
        if state.phase == NO_SESSION:
            log.info("Starting a new session")
            self._start_session(now)
            state.background_time = 0.0
            return

        reference = state.background_time or state.end_time
        if reference and now - reference > self.session_timeout:
            log.info("Away for %.1fs (timeout %.1fs) — closing previous session",
                     now - reference, self.session_timeout)
            self._end_session(reference)
            self._start_session(now)
        else:
            log.debug("Within session timeout, continuing current session")
        state.background_time = 0.0

    def _close_after_timeout(self, marker, release):
        with self._lock:
            if self._close_marker is not marker:
                log.debug("Session close superseded by a foreground transition")
                release()
                return
            self._close_item = None
            self._close_marker = None
            self._close_release = None
            try:
                self._end_session(self._clock())
                self._state.background_time = 0.0
            except PersistenceError as e:
                log.error("Could not end session after timeout: %s", e)
        self._flusher.flush_if_needed(on_complete=release)

    def _start_session(self, now):
        self._state.begin(now)
        try:
            self._tracker.track(TrackType.SESSION_START)
        except NoProjectTokenError as e:
            log.error("Session start not tracked: %s", e)

    def _end_session(self, now):
        state = self._state
        if state.start_time == 0:
            log.debug("No session to end")
            return
        if state.end_time == 0:
            state.end_time = now
        try:
            self._tracker.track(TrackType.SESSION_END)
        except NoProjectTokenError as e:
            # Stays Ended; the next foreground transition resolves it.
            log.error("Session end not tracked: %s", e)
            return
        state.reset()
        log.info("Session ended")
