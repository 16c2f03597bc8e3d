"""
Paths, logging setup, Configuration, config load/save.
"""

import os
import json
import sys
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .constants import DEFAULT_BASE_URL, DEFAULT_SESSION_TIMEOUT_SEC
from .errors import ConfigurationError
from .models import TrackType


# ─── Paths ───────────────────────────────────────────────────────
# One data directory per installation. Created lazily by the runner.
BASE_DIR = Path(os.environ.get("ANALYTICS_HOME", Path.home() / ".analytics_core"))

CONFIG_FILE = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "analytics.log"
STATE_FILE = BASE_DIR / "state.json"
DATA_DIR = BASE_DIR / "records"

LOG_MAX_BYTES = 1_000_000
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("analytics")
_logging_configured = False


def configure_logging(log_file=None, level=logging.INFO):
    """Attach file + console handlers to the analytics logger (once)."""
    global _logging_configured
    if _logging_configured:
        return log

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if log_file is not None:
        log_file = Path(log_file)
        try:
            if log_file.exists() and log_file.stat().st_size > LOG_MAX_BYTES:
                log_file.write_text("")
        except OSError:
            pass
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setFormatter(formatter)
        log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    log.addHandler(console_handler)

    log.setLevel(level)
    _logging_configured = True
    return log


# ─── Configuration ───────────────────────────────────────────────

@dataclass
class Configuration:
    """SDK configuration. Project tokens can be overridden per track type."""

    project_token: str = ""
    project_mapping: dict = field(default_factory=dict)
    session_timeout: float = DEFAULT_SESSION_TIMEOUT_SEC
    automatic_session_tracking: bool = True
    automatic_push_tracking: bool = True
    base_url: str = DEFAULT_BASE_URL
    authorization: str = ""
    app_version: str = ""

    def tokens_for(self, track_type):
        """Tokens to track ``track_type`` into. Mapping wins over the default token."""
        mapped = self.project_mapping.get(track_type)
        if mapped:
            return list(mapped)
        if self.project_token:
            return [self.project_token]
        return []

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a JSON object")

        mapping = {}
        for key, tokens in (data.get("projectMapping") or {}).items():
            try:
                track_type = TrackType(key)
            except ValueError:
                raise ConfigurationError(f"Unknown track type in projectMapping: {key!r}")
            if isinstance(tokens, str) or not all(isinstance(t, str) for t in tokens):
                raise ConfigurationError(f"projectMapping[{key!r}] must be a list of tokens")
            mapping[track_type] = list(tokens)

        try:
            timeout = float(data.get("sessionTimeout", DEFAULT_SESSION_TIMEOUT_SEC))
        except (TypeError, ValueError):
            raise ConfigurationError("sessionTimeout must be a number")
        if timeout <= 0:
            raise ConfigurationError("sessionTimeout must be positive")

        return cls(
            project_token=data.get("projectToken") or "",
            project_mapping=mapping,
            session_timeout=timeout,
            automatic_session_tracking=bool(data.get("automaticSessionTracking", True)),
            automatic_push_tracking=bool(data.get("automaticPushTracking", True)),
            base_url=(data.get("baseUrl") or DEFAULT_BASE_URL).rstrip("/"),
            authorization=data.get("authorization") or "",
            app_version=data.get("appVersion") or "",
        )

    def to_dict(self):
        return {
            "projectToken": self.project_token,
            "projectMapping": {t.value: list(tokens) for t, tokens in self.project_mapping.items()},
            "sessionTimeout": self.session_timeout,
            "automaticSessionTracking": self.automatic_session_tracking,
            "automaticPushTracking": self.automatic_push_tracking,
            "baseUrl": self.base_url,
            "authorization": self.authorization,
            "appVersion": self.app_version,
        }


# ─── Config Management ──────────────────────────────────────────

def load_config(path=CONFIG_FILE):
    """Load config from disk. Returns Configuration or None."""
    path = Path(path)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                return Configuration.from_dict(json.load(f))
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Config at %s unreadable: %s", path, e)
            return None
    return None


def save_config(config, path=CONFIG_FILE):
    """Save a Configuration to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
    log.info("Config saved to %s", path)
