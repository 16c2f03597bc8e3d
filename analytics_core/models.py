"""
Data model — payload fragments, JSON values, pending records, customer identity,
flushing mode.

A track request is an ordered list of fragments. ``reduce_fragments`` folds them
into a RecordDraft without touching any store, so materialization is a pure
function.
"""

import enum
import math
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .constants import PUSH_TOKEN_PROPERTY
from .errors import ValidationError


class TrackType(str, enum.Enum):
    INSTALL = "install"
    SESSION_START = "sessionStart"
    SESSION_END = "sessionEnd"
    CUSTOM_EVENT = "customEvent"
    IDENTIFY_CUSTOMER = "identifyCustomer"
    PAYMENT = "payment"
    REGISTER_PUSH_TOKEN = "registerPushToken"
    PUSH_OPENED = "pushOpened"
    PUSH_DELIVERED = "pushDelivered"


# ─── JSON values ─────────────────────────────────────────────────

def normalize_json_value(value):
    """Return ``value`` as plain JSON data (tuples → lists). Raises ValidationError."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [normalize_json_value(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"JSON object keys must be strings, got {type(key).__name__}")
            out[key] = normalize_json_value(item)
        return out
    raise ValidationError(f"Unsupported JSON value type: {type(value).__name__}")


def normalize_mapping(mapping):
    if mapping is None:
        return {}
    if not isinstance(mapping, dict):
        raise ValidationError(f"Expected a mapping, got {type(mapping).__name__}")
    return normalize_json_value(mapping)


# ─── Payload fragments ───────────────────────────────────────────

@dataclass(frozen=True)
class ProjectToken:
    token: str


@dataclass(frozen=True)
class CustomerIdentifiers:
    ids: Dict[str, Any]


@dataclass(frozen=True)
class Properties:
    values: Dict[str, Any]


@dataclass(frozen=True)
class Timestamp:
    value: Optional[float] = None


@dataclass(frozen=True)
class EventType:
    name: str


@dataclass(frozen=True)
class PushToken:
    token: str


@dataclass(frozen=True)
class RecordDraft:
    """Intermediate record state produced by ``reduce_fragments``."""

    project_token: str = ""
    event_type: str = ""
    timestamp: Optional[float] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    customer_ids: Dict[str, Any] = field(default_factory=dict)


def _timestamp_value(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Timestamp must be a number of seconds, got {value!r}")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"Timestamp must be finite, got {value!r}")
    return float(value)


def reduce_fragments(draft, fragments):
    """Fold ``fragments`` into ``draft``.

    Last fragment of a kind wins, except Properties and CustomerIdentifiers,
    which merge key-wise. ``Timestamp(None)`` keeps the current timestamp.
    """
    for fragment in fragments:
        if isinstance(fragment, ProjectToken):
            draft = replace(draft, project_token=fragment.token)
        elif isinstance(fragment, EventType):
            draft = replace(draft, event_type=fragment.name)
        elif isinstance(fragment, Timestamp):
            if fragment.value is not None:
                draft = replace(draft, timestamp=_timestamp_value(fragment.value))
        elif isinstance(fragment, Properties):
            merged = dict(draft.properties)
            merged.update(normalize_mapping(fragment.values))
            draft = replace(draft, properties=merged)
        elif isinstance(fragment, CustomerIdentifiers):
            merged = dict(draft.customer_ids)
            merged.update(normalize_mapping(fragment.ids))
            draft = replace(draft, customer_ids=merged)
        elif isinstance(fragment, PushToken):
            merged = dict(draft.properties)
            merged[PUSH_TOKEN_PROPERTY] = fragment.token
            draft = replace(draft, properties=merged)
        else:
            raise ValidationError(f"Unknown payload fragment: {fragment!r}")
    return draft


# ─── Records ─────────────────────────────────────────────────────

def new_record_id():
    return uuid.uuid4().hex


@dataclass
class CustomerIdentity:
    uuid: str
    ids: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        return {"uuid": self.uuid, "ids": dict(self.ids)}

    @classmethod
    def from_dict(cls, row):
        return cls(uuid=row["uuid"], ids=dict(row.get("ids") or {}))


@dataclass
class PendingEventRecord:
    id: str
    project_token: str
    event_type: str
    timestamp: float
    properties: Dict[str, Any] = field(default_factory=dict)
    customer_uuid: str = ""   # Back-reference only; the customer is never owned here

    @property
    def fragments(self) -> List[Any]:
        return [
            ProjectToken(self.project_token),
            EventType(self.event_type),
            Timestamp(self.timestamp),
            Properties(dict(self.properties)),
        ]

    def to_dict(self):
        return {
            "id": self.id,
            "projectToken": self.project_token,
            "eventType": self.event_type,
            "timestamp": self.timestamp,
            "properties": self.properties,
            "customer": self.customer_uuid,
        }

    @classmethod
    def from_dict(cls, row):
        return cls(
            id=row["id"],
            project_token=row["projectToken"],
            event_type=row["eventType"],
            timestamp=float(row["timestamp"]),
            properties=dict(row.get("properties") or {}),
            customer_uuid=row.get("customer", ""),
        )


@dataclass
class PendingCustomerRecord:
    id: str
    project_token: str
    timestamp: float
    properties: Dict[str, Any] = field(default_factory=dict)
    customer_uuid: str = ""

    @property
    def fragments(self) -> List[Any]:
        return [
            ProjectToken(self.project_token),
            Timestamp(self.timestamp),
            Properties(dict(self.properties)),
        ]

    def to_dict(self):
        return {
            "id": self.id,
            "projectToken": self.project_token,
            "timestamp": self.timestamp,
            "properties": self.properties,
            "customer": self.customer_uuid,
        }

    @classmethod
    def from_dict(cls, row):
        return cls(
            id=row["id"],
            project_token=row["projectToken"],
            timestamp=float(row["timestamp"]),
            properties=dict(row.get("properties") or {}),
            customer_uuid=row.get("customer", ""),
        )


# ─── Flushing mode ───────────────────────────────────────────────

class FlushingKind(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    PERIODIC = "periodic"
    IMMEDIATE = "immediate"


@dataclass(frozen=True)
class FlushingMode:
    kind: FlushingKind
    interval: float = 0.0

    @classmethod
    def manual(cls):
        return cls(FlushingKind.MANUAL)

    @classmethod
    def automatic(cls):
        return cls(FlushingKind.AUTOMATIC)

    @classmethod
    def immediate(cls):
        return cls(FlushingKind.IMMEDIATE)

    @classmethod
    def periodic(cls, interval):
        if interval <= 0:
            raise ValueError("Periodic flushing interval must be positive")
        return cls(FlushingKind.PERIODIC, float(interval))

    def __str__(self):
        if self.kind is FlushingKind.PERIODIC:
            return f"periodic({self.interval:g}s)"
        return self.kind.value
