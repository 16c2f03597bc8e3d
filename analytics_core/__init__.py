"""
analytics_core — client-side event tracking with durable local queue
=====================================================================
Architecture: synchronous local writes, asynchronous per-record uploads.

  constants.py    → Version, event type names, durable keys, defaults
  errors.py       → Error taxonomy
  config.py       → Paths, logging, Configuration, config load/save
  models.py       → Payload fragments, records, flushing mode, reducer
  storage.py      → KeyValueStore + FileRecordEngine (JSON / JSON-lines)
  database.py     → DatabaseManager (durable record store)
  state.py        → SessionState (durable session timestamps)
  scheduler.py    → Cancellable work items, repeating tasks
  lifecycle.py    → Background lifetime extension
  device.py       → Device properties
  http_client.py  → HTTP session with pooling + connect retry
  api.py          → HttpRepository (upload customer updates / events)
  flush.py        → FlushCoordinator (drain store → network)
  session.py      → SessionManager (session state machine)
  tracking.py     → TrackingManager (public façade)
  runner.py       → create_tracking_manager() factory
"""

from .config import Configuration
from .errors import (
    AnalyticsError,
    NoProjectTokenError,
    NotFoundError,
    PersistenceError,
    UploadError,
    ValidationError,
)
from .models import (
    CustomerIdentifiers,
    EventType,
    FlushingMode,
    Properties,
    ProjectToken,
    PushToken,
    Timestamp,
    TrackType,
)
from .runner import create_tracking_manager
from .tracking import TrackingManager

__all__ = [
    "Configuration",
    "AnalyticsError",
    "NoProjectTokenError",
    "NotFoundError",
    "PersistenceError",
    "UploadError",
    "ValidationError",
    "CustomerIdentifiers",
    "EventType",
    "FlushingMode",
    "Properties",
    "ProjectToken",
    "PushToken",
    "Timestamp",
    "TrackType",
    "create_tracking_manager",
    "TrackingManager",
]
