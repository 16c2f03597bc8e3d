"""
SessionState — durable view of the session timestamps.

Values live only in the key-value store; nothing is cached here, so every
reader sees what is on disk. 0 means "unset".
"""

from .constants import KEY_SESSION_BACKGROUND, KEY_SESSION_END, KEY_SESSION_START

NO_SESSION = "no_session"
ACTIVE = "active"
ENDED = "ended"


class SessionState:

    def __init__(self, store):
        self._store = store

    # ── Timestamps ────────────────────────────────────────────
    @property
    def start_time(self) -> float:
        return self._store.get_double(KEY_SESSION_START)

    @start_time.setter
    def start_time(self, value: float):
        self._store.set_double(KEY_SESSION_START, value)

    @property
    def end_time(self) -> float:
        return self._store.get_double(KEY_SESSION_END)

    @end_time.setter
    def end_time(self, value: float):
        self._store.set_double(KEY_SESSION_END, value)

    @property
    def background_time(self) -> float:
        return self._store.get_double(KEY_SESSION_BACKGROUND)

    @background_time.setter
    def background_time(self, value: float):
        self._store.set_double(KEY_SESSION_BACKGROUND, value)

    # ── Derived ───────────────────────────────────────────────
    @property
    def phase(self) -> str:
        if self.start_time == 0:
            return NO_SESSION
        if self.end_time == 0:
            return ACTIVE
        return ENDED

    def begin(self, now: float):
        """Start a fresh session at ``now``."""
        self.end_time = 0.0
        self.start_time = now

    def reset(self):
        """Back to NoSession. End is cleared first so end != 0 never outlives start."""
        self.end_time = 0.0
        self.start_time = 0.0
        self.background_time = 0.0
