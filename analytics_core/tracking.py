"""
TrackingManager — the public entry point.

Turns typed track requests into durable records, and wires the host lifecycle
into the session state machine and the flush coordinator:

  track()          → DatabaseManager (synchronous local write)
                   → FlushCoordinator.on_track() (immediate mode flushes)
  on_foreground()  → SessionManager + periodic flush timer
  on_background()  → SessionManager delayed close + automatic flush
  on_terminate()   → SessionManager immediate close + flush

Only NoProjectTokenError escapes ``track()``; storage and validation failures
are logged and the affected record is dropped.
"""

import threading
import time

from .config import log
from .constants import (
    EVENT_CAMPAIGN,
    EVENT_INSTALLATION,
    EVENT_PAYMENT,
    EVENT_SESSION_END,
    EVENT_SESSION_START,
    KEY_INSTALL_TRACKED,
)
from .device import DeviceProperties
from .errors import NoProjectTokenError, PersistenceError, ValidationError
from .flush import FlushCoordinator
from .lifecycle import BackgroundActivity
from .models import (
    CustomerIdentifiers,
    EventType,
    Properties,
    ProjectToken,
    PushToken,
    Timestamp,
    TrackType,
)
from .scheduler import ThreadScheduler
from .session import SessionManager
from .state import SessionState


class TrackingManager:

    def __init__(self, config, database, repository, store, scheduler=None,
                 device=None, background_host=None, flushing_mode=None,
                 clock=time.time, setup=True):
        self._config = config
        self.database = database
        self._store = store
        self._device = device or DeviceProperties(config.app_version)
        self._clock = clock
        self._install_lock = threading.Lock()
        scheduler = scheduler or ThreadScheduler()

        self.session_state = SessionState(store)
        self.flusher = FlushCoordinator(database, repository, scheduler, flushing_mode)
        self._background = BackgroundActivity(background_host, on_expired=self._on_background_expired)
        self.sessions = SessionManager(
            self.session_state, self, self.flusher, scheduler, self._background,
            config.session_timeout, clock=clock,
        )

        self._handlers = {
            TrackType.INSTALL: self._track_install,
            TrackType.SESSION_START: self._track_session_start,
            TrackType.SESSION_END: self._track_session_end,
            TrackType.CUSTOM_EVENT: self._track_event,
            TrackType.IDENTIFY_CUSTOMER: self._identify_customer,
            TrackType.PAYMENT: self._track_payment,
            TrackType.REGISTER_PUSH_TOKEN: self._track_push_token,
            TrackType.PUSH_OPENED: self._track_push_opened,
            TrackType.PUSH_DELIVERED: self._track_push_delivered,
        }

        if setup:
            self.initial_setup()

    @property
    def configuration(self):
        return self._config

    @property
    def flushing_mode(self):
        return self.flusher.flushing_mode

    @flushing_mode.setter
    def flushing_mode(self, mode):
        self.flusher.flushing_mode = mode

    def initial_setup(self):
        self.track_install_event()
        log.info(
            "Tracking ready (session tracking=%s, push tracking=%s, flushing=%s)",
            self._config.automatic_session_tracking,
            self._config.automatic_push_tracking,
            self.flushing_mode,
        )

    # ─── Track ───────────────────────────────────────────────────

    def track(self, track_type, fragments=None):
        """Persist a track request for every configured project token.

        Raises NoProjectTokenError when no token is configured for
        ``track_type``. Other failures are logged, never raised.
        """
        if track_type is TrackType.INSTALL:
            with self._install_lock:
                if self._install_tracked():
                    log.debug("Install event was already tracked, skipping")
                    return
                persisted = self._persist(track_type, fragments)
                if persisted:
                    self._mark_install_tracked()
        else:
            persisted = self._persist(track_type, fragments)

        if persisted:
            self.flusher.on_track()

    def _persist(self, track_type, fragments):
        tokens = self._config.tokens_for(track_type)
        if not tokens:
            raise NoProjectTokenError(f"No project tokens provided for {track_type.value}")

        log.debug("Tracking event of type: %s", track_type.value)
        handler = self._handlers[track_type]
        persisted = 0
        for token in tokens:
            payload = [ProjectToken(token)] + list(fragments or [])
            try:
                handler(payload)
                persisted += 1
            except (PersistenceError, ValidationError) as e:
                log.error("Dropped %s for project %s: %s", track_type.value, token, e)
        return persisted

    # ─── Install (once per installation) ─────────────────────────

    def _install_key(self):
        return KEY_INSTALL_TRACKED.format(uuid=self.database.customer.uuid)

    def _install_tracked(self):
        try:
            return self._store.get_bool(self._install_key())
        except PersistenceError as e:
            log.error("Cannot read install flag: %s", e)
            return True

    def _mark_install_tracked(self):
        try:
            self._store.set_bool(self._install_key(), True)
        except PersistenceError as e:
            log.error("Cannot persist install flag: %s", e)

    def track_install_event(self):
        """Installation is tracked once for the lifetime of the app on this device."""
        try:
            self.track(TrackType.INSTALL)
        except NoProjectTokenError as e:
            log.error("Install event not tracked: %s", e)

    # ─── Specialized paths ───────────────────────────────────────

    def _track_install(self, payload):
        self.database.insert_event(
            payload[:1]
            + [Properties(self._device.properties())]
            + payload[1:]
            + [EventType(EVENT_INSTALLATION)]
        )

    def _track_session_start(self, payload):
        start = self.session_state.start_time
        properties = self._device.properties()
        properties["event_type"] = EVENT_SESSION_START
        properties["timestamp"] = start
        self.database.insert_event(
            payload + [Properties(properties), Timestamp(start), EventType(EVENT_SESSION_START)]
        )

    def _track_session_end(self, payload):
        start = self.session_state.start_time
        end = self.session_state.end_time
        duration = end - start
        if duration < 0:
            log.warning("Negative session duration %.1fs (clock changed?) — clamping to 0", duration)
            duration = 0.0

        properties = self._device.properties()
        properties["event_type"] = EVENT_SESSION_END
        properties["timestamp"] = start
        properties["duration"] = duration
        self.database.insert_event(
            payload + [Properties(properties), Timestamp(end), EventType(EVENT_SESSION_END)]
        )

    def _track_event(self, payload):
        self.database.insert_event(payload)

    def _identify_customer(self, payload):
        self.database.insert_customer_update(payload)

    def _track_payment(self, payload):
        self.database.insert_event(payload + [EventType(EVENT_PAYMENT)])

    def _track_push_token(self, payload):
        self.database.insert_customer_update(payload)

    def _track_push_opened(self, payload):
        self.database.insert_event(
            payload
            + [Properties({"action_type": "mobile notification", "status": "clicked"}),
               EventType(EVENT_CAMPAIGN)]
        )

    def _track_push_delivered(self, payload):
        self.database.insert_event(
            payload
            + [Properties({"action_type": "mobile notification", "status": "delivered"}),
               EventType(EVENT_CAMPAIGN)]
        )

    # ─── Convenience API ─────────────────────────────────────────

    def track_event(self, event_type, properties=None, timestamp=None):
        self.track(TrackType.CUSTOM_EVENT, [
            EventType(event_type), Properties(properties or {}), Timestamp(timestamp),
        ])

    def identify_customer(self, customer_ids=None, properties=None, timestamp=None):
        self.track(TrackType.IDENTIFY_CUSTOMER, [
            CustomerIdentifiers(customer_ids or {}), Properties(properties or {}), Timestamp(timestamp),
        ])

    def track_payment(self, properties, timestamp=None):
        self.track(TrackType.PAYMENT, [Properties(properties), Timestamp(timestamp)])

    def track_push_token(self, token):
        self.track(TrackType.REGISTER_PUSH_TOKEN, [PushToken(token)])

    def track_push_opened(self, properties=None):
        self.track(TrackType.PUSH_OPENED, [Properties(properties or {})])

    def track_push_delivered(self, properties=None):
        self.track(TrackType.PUSH_DELIVERED, [Properties(properties or {})])

    # ─── Host hooks (payments, push) ─────────────────────────────

    def track_payment_event(self, fragments):
        """Payment observer callback. Never raises."""
        try:
            self.track(TrackType.PAYMENT, fragments)
            log.info("Payment event tracked")
        except NoProjectTokenError as e:
            log.error("Payment not tracked: %s", e)

    def on_push_token_registered(self, token):
        if not self._config.automatic_push_tracking:
            return
        try:
            self.track_push_token(token)
        except NoProjectTokenError as e:
            log.error("Push token not tracked: %s", e)

    def on_push_received(self, payload=None, opened=True):
        if not self._config.automatic_push_tracking:
            return
        try:
            if opened:
                self.track_push_opened(payload)
            else:
                self.track_push_delivered(payload)
        except NoProjectTokenError as e:
            log.error("Push notification not tracked: %s", e)

    # ─── Flushing ────────────────────────────────────────────────

    def flush(self, on_complete=None):
        self.flusher.flush(on_complete)

    # ─── Host lifecycle ──────────────────────────────────────────

    def on_foreground(self):
        self.flusher.on_foreground()
        if self._config.automatic_session_tracking:
            self.sessions.on_foreground()

    def on_background(self):
        if self._config.automatic_session_tracking:
            self.sessions.on_background()
        self.flusher.on_background(on_complete=self._background.acquire())

    def on_terminate(self):
        if self._config.automatic_session_tracking:
            self.sessions.on_terminate()
        else:
            self.flusher.flush_if_needed(on_complete=self._background.acquire())

    def _on_background_expired(self):
        self.sessions.on_background_expired()
