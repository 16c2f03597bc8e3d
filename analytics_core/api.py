"""
Server API calls — customer updates and events.

Each upload is one POST on a short-lived worker thread. The result comes back
through ``callback(error)``: ``None`` on success, an UploadError otherwise.
Nothing is buffered or retried here; the pending record in the local store is
the retry queue.
"""

import threading

import requests

from .config import log
from .constants import API_TIMEOUT_UPLOAD, NETWORK_ERRORS_BEFORE_RESET
from .errors import UploadError
from .models import RecordDraft, reduce_fragments
from . import http_client


def _spawn(fn):
    threading.Thread(target=fn, daemon=True).start()


class HttpRepository:
    """Network collaborator that talks to the tracking API over HTTPS."""

    def __init__(self, config, session=None, dispatch=_spawn):
        self._config = config
        self._session = session or http_client.create_session()
        self._dispatch = dispatch
        self._lock = threading.Lock()
        self._network_errors = 0

    # ─── Public API ──────────────────────────────────────────────

    def upload_customer_update(self, fragments, customer_ids, callback):
        draft = reduce_fragments(RecordDraft(), fragments)
        url = f"{self._config.base_url}/track/v2/projects/{draft.project_token}/customers"
        payload = {
            "customer_ids": dict(customer_ids),
            "properties": draft.properties,
        }
        self._dispatch(lambda: self._post("customer update", url, payload, callback))

    def upload_event(self, fragments, customer_ids, callback):
        draft = reduce_fragments(RecordDraft(), fragments)
        url = f"{self._config.base_url}/track/v2/projects/{draft.project_token}/customers/events"
        payload = {
            "customer_ids": dict(customer_ids),
            "event_type": draft.event_type,
            "properties": draft.properties,
        }
        if draft.timestamp is not None:
            payload["timestamp"] = draft.timestamp
        self._dispatch(lambda: self._post("event", url, payload, callback))

    def reset(self):
        """Drop pooled connections after repeated network errors."""
        with self._lock:
            self._session = http_client.reset_session(self._session)
            self._network_errors = 0

    # ─── Internals ───────────────────────────────────────────────

    def _current_session(self):
        with self._lock:
            return self._session

    def _note_network_error(self):
        with self._lock:
            self._network_errors += 1
            stale = self._network_errors >= NETWORK_ERRORS_BEFORE_RESET
            if stale:
                self._network_errors = 0
        if stale:
            log.warning("%d network errors in a row, resetting HTTP session", NETWORK_ERRORS_BEFORE_RESET)
            self.reset()

    def _headers(self):
        if self._config.authorization:
            return {"Authorization": self._config.authorization}
        return {}

    def _post(self, what, url, payload, callback):
        error = None
        try:
            resp = self._current_session().post(url, json=payload, headers=self._headers(), timeout=API_TIMEOUT_UPLOAD)
            if resp.status_code in (200, 201):
                log.debug("Upload OK | %s", what)
            elif resp.status_code == 401:
                log.error("Upload REJECTED (401) — check the authorization token")
                error = UploadError(f"{what} rejected: HTTP 401")
            else:
                error = UploadError(f"{what} failed: HTTP {resp.status_code} — {resp.text[:200]}")
        except requests.RequestException as e:
            error = UploadError(f"{what} network error: {e}")
            self._note_network_error()
        else:
            with self._lock:
                self._network_errors = 0

        try:
            callback(error)
        except Exception as e:
            log.error("Upload callback for %s raised: %s", what, e, exc_info=True)
