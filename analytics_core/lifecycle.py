"""
Background lifetime extension.

The host decides how long the process may keep running after it leaves the
foreground. ``begin()`` asks for an extension and ``end()`` gives it back;
the host calls the expiration handler when the extension runs out.

BackgroundActivity reference-counts holders so the delayed session close and
an automatic background flush can share one extension.
"""

import threading

from .config import log


class NullBackgroundTaskHost:
    """For hosts without a background-lifetime concept."""

    def begin(self, expiration_handler):
        return None

    def end(self, token):
        pass


class BackgroundActivity:
    """One host extension shared by any number of holders.

    ``acquire()`` returns the holder's own release callable. Calling it more
    than once is harmless, and a release left over from an extension that
    already expired never touches the holders of a newer one.
    """

    def __init__(self, host=None, on_expired=None):
        self._host = host or NullBackgroundTaskHost()
        self._on_expired = on_expired
        self._lock = threading.Lock()
        self._holders = 0
        self._token = None
        self._active = False
        self._generation = 0

    @property
    def active(self):
        return self._active

    @property
    def holders(self):
        return self._holders

    def acquire(self):
        with self._lock:
            self._holders += 1
            starting = not self._active
            if starting:
                self._active = True
                self._generation += 1
            generation = self._generation
        if starting:
            token = self._host.begin(lambda: self._expired(generation))
            with self._lock:
                if self._generation == generation:
                    self._token = token
            log.debug("Background task started")

        released = []

        def release():
            with self._lock:
                if released:
                    return
                released.append(True)
            self._release(generation)

        return release

    def _release(self, generation):
        with self._lock:
            if generation != self._generation or not self._active:
                log.debug("Ignoring release for an expired background task")
                return
            self._holders -= 1
            if self._holders:
                return
            token, self._token, self._active = self._token, None, False
        self._host.end(token)
        log.debug("Background task ended")

    def _expired(self, generation):
        with self._lock:
            if generation != self._generation or not self._active:
                return
            log.warning("Background time expired with %d holder(s) — ending task", self._holders)
            token, self._token = self._token, None
            self._holders = 0
            self._active = False
        self._host.end(token)
        if self._on_expired is not None:
            self._on_expired()
