"""
DatabaseManager — the durable record store.

Owns the two pending-record kinds (events, customer updates) and the single
CustomerIdentity. Every operation runs under one re-entrant lock, which is the
serialization context for all writers and the flush drainer.
"""

import threading
import time
import uuid

from .config import log
from .constants import KIND_CUSTOMER, KIND_EVENT
from .errors import ValidationError
from .models import (
    CustomerIdentity,
    PendingCustomerRecord,
    PendingEventRecord,
    RecordDraft,
    new_record_id,
    reduce_fragments,
)


class DatabaseManager:

    def __init__(self, engine, clock=time.time):
        self._engine = engine
        self._clock = clock
        self._lock = threading.RLock()

    # ─── Customer identity ───────────────────────────────────────

    @property
    def customer(self):
        """The installation's CustomerIdentity, created on first access."""
        with self._lock:
            row = self._engine.load_customer()
            if row:
                return CustomerIdentity.from_dict(row)
            customer = CustomerIdentity(uuid=str(uuid.uuid4()))
            self._engine.save_customer(customer.to_dict())
            log.info("New customer created with UUID: %s", customer.uuid)
            return customer

    def _update_customer_ids(self, ids):
        customer = self.customer
        for key, value in ids.items():
            if key in customer.ids:
                log.debug("Updating existing customer id %s", key)
            else:
                log.debug("Creating new customer id %s", key)
            customer.ids[key] = value
        self._engine.save_customer(customer.to_dict())
        return customer

    def current_customer_identifiers(self):
        """Identifiers sent with every upload. The local uuid goes out as ``cookie``."""
        with self._lock:
            customer = self.customer
        ids = {"cookie": customer.uuid}
        ids.update(customer.ids)
        return ids

    # ─── Inserts ─────────────────────────────────────────────────

    def insert_event(self, fragments):
        draft = reduce_fragments(RecordDraft(), fragments)
        if not draft.project_token:
            raise ValidationError("Event is missing a project token")
        if not draft.event_type:
            raise ValidationError("Event is missing an event type")

        with self._lock:
            record = PendingEventRecord(
                id=new_record_id(),
                project_token=draft.project_token,
                event_type=draft.event_type,
                timestamp=draft.timestamp if draft.timestamp is not None else self._clock(),
                properties=draft.properties,
                customer_uuid=self.customer.uuid,
            )
            self._engine.append(KIND_EVENT, record.to_dict())
        log.debug("Added event %s (%s) to database", record.id, record.event_type)
        return record

    def insert_customer_update(self, fragments):
        draft = reduce_fragments(RecordDraft(), fragments)
        if not draft.project_token:
            raise ValidationError("Customer update is missing a project token")

        with self._lock:
            if draft.customer_ids:
                customer = self._update_customer_ids(draft.customer_ids)
            else:
                customer = self.customer
            record = PendingCustomerRecord(
                id=new_record_id(),
                project_token=draft.project_token,
                timestamp=draft.timestamp if draft.timestamp is not None else self._clock(),
                properties=draft.properties,
                customer_uuid=customer.uuid,
            )
            self._engine.append(KIND_CUSTOMER, record.to_dict())
        log.debug("Added customer update %s to database", record.id)
        return record

    # ─── Reads / deletes ─────────────────────────────────────────

    def list_events(self):
        with self._lock:
            return [PendingEventRecord.from_dict(row) for row in self._engine.fetch_all(KIND_EVENT)]

    def list_customer_updates(self):
        with self._lock:
            return [PendingCustomerRecord.from_dict(row) for row in self._engine.fetch_all(KIND_CUSTOMER)]

    def delete(self, record):
        """Remove a pending record. Raises NotFoundError if it is already gone."""
        kind = KIND_EVENT if isinstance(record, PendingEventRecord) else KIND_CUSTOMER
        with self._lock:
            self._engine.remove(kind, record.id)
        log.debug("Removed %s record %s", kind, record.id)
