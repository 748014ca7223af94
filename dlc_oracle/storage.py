# dlc_oracle/storage.py
"""
DLC Oracle Storage Gateway

Contract the signing engine persists through, plus an in-process
implementation. Durable storage lives in sqlite_storage.py.

Every write is atomic. Signatures are written with a conditional write:
a nonce's signature goes from unset to set once, identical re-submission
succeeds without changes, and anything else is a ConflictError. This is
what keeps attestation single-writer across independent oracle
processes sharing one store.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .errors import ConflictError, ConsistencyError, NotFoundError, ValidationError
from .models import (
    ANNOUNCED,
    ATTESTED,
    ENUM,
    NUMERIC,
    Announcement,
    EventRecord,
    EventSummary,
    SignatureEntry,
)

ANNOUNCEMENT = "announcement"
ATTESTATION = "attestation"
MAX_PAGE_SIZE = 1000


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def check_new_event(announcement: Announcement, nonces) -> None:
    """An event must be stored with exactly one nonce row per announced point."""
    nonces = list(nonces)
    expected = announcement.descriptor.nonce_count
    if len(nonces) != expected or len(announcement.nonce_points) != expected:
        raise ConsistencyError(
            f"Event {announcement.event_id}: {len(nonces)} nonces for {expected} slots"
        )
    for i, nonce in enumerate(sorted(nonces, key=lambda n: n.index)):
        if nonce.index != i or nonce.nonce_point != announcement.nonce_points[i]:
            raise ConsistencyError(f"Event {announcement.event_id}: nonce {i} does not match")
        if nonce.event_id != announcement.event_id or nonce.signed:
            raise ConsistencyError(f"Event {announcement.event_id}: nonce {i} is not a fresh nonce")
    if len({n.nonce_point for n in nonces}) != len(nonces):
        raise ConsistencyError(f"Event {announcement.event_id}: repeated nonce point")


def check_list_params(status, kind, limit, offset) -> None:
    if status not in (None, ANNOUNCED, ATTESTED):
        raise ValidationError(f"Unknown status filter {status!r}")
    if kind not in (None, ENUM, NUMERIC):
        raise ValidationError(f"Unknown event type filter {kind!r}")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be in [1, {MAX_PAGE_SIZE}]")
    if offset < 0:
        raise ValidationError("offset must be >= 0")


def plan_signature_writes(record: EventRecord, entries) -> list[SignatureEntry]:
    """
    Decide which entries still need writing, or raise ConflictError.

    Every already-signed nonce of the event must appear in `entries` with
    the same signature and outcome; only the unsigned remainder is returned.
    """
    entries = list(entries)
    required = 1 if record.descriptor.kind == ENUM else record.descriptor.nonce_count
    if len(entries) != required:
        raise ValidationError(
            f"Event {record.event_id} takes {required} signature(s) per attestation, "
            f"got {len(entries)}"
        )
    by_index = {n.index: n for n in record.nonces}
    submitted = {}
    for entry in entries:
        if entry.index not in by_index:
            raise ValidationError(f"Event {record.event_id} has no nonce {entry.index}")
        if entry.index in submitted:
            raise ValidationError(f"Nonce {entry.index} submitted twice")
        submitted[entry.index] = entry

    for nonce in record.signed_nonces:
        entry = submitted.get(nonce.index)
        if entry is None or entry.signature != nonce.signature or entry.outcome != nonce.outcome:
            raise ConflictError(
                f"Event {record.event_id} already attested with a different outcome"
            )
    return [e for e in entries if not by_index[e.index].signed]


class StorageGateway(ABC):
    """Persistence contract consumed by the builder and the attestor."""

    @abstractmethod
    def bind_oracle_pubkey(self, pubkey: bytes) -> None:
        """Record the oracle key on first use; ConsistencyError on mismatch."""

    @abstractmethod
    def create_event(self, announcement: Announcement, nonces) -> None:
        """Atomically store an announcement with all its nonces."""

    @abstractmethod
    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...

    @abstractmethod
    def list_events(self, status: str = None, kind: str = None,
                    limit: int = 100, offset: int = 0) -> list[EventSummary]:
        """Event summaries in creation order."""

    @abstractmethod
    def record_signatures(self, event_id: str, entries) -> EventRecord:
        """Atomic conditional write of one attestation's signatures."""

    @abstractmethod
    def set_delivery_id(self, event_id: str, kind: str, delivery_id: str) -> None:
        """Remember where an announcement or attestation was published."""

    def record_signature(self, event_id: str, index: int, signature: bytes,
                         outcome: str) -> EventRecord:
        return self.record_signatures(event_id, [SignatureEntry(index, signature, outcome)])


class MemoryStorage(StorageGateway):
    """Process-local storage; one lock serializes all writes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events = {}
        self._points = set()
        self._pubkey = None

    def bind_oracle_pubkey(self, pubkey: bytes) -> None:
        with self._lock:
            if self._pubkey is None:
                self._pubkey = pubkey
            elif self._pubkey != pubkey:
                raise ConsistencyError(
                    f"Storage oracle pubkey ({self._pubkey.hex()}) does not match "
                    f"signing key ({pubkey.hex()})"
                )

    def create_event(self, announcement: Announcement, nonces) -> None:
        nonces = list(nonces)
        check_new_event(announcement, nonces)
        with self._lock:
            if announcement.event_id in self._events:
                raise ConflictError(f"Event already exists: {announcement.event_id}")
            points = {n.nonce_point for n in nonces}
            if points & self._points:
                raise ConsistencyError(f"Event {announcement.event_id} reuses a nonce point")
            self._events[announcement.event_id] = EventRecord(
                announcement=announcement, nonces=tuple(nonces), created_at=utc_now()
            )
            self._points |= points

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        with self._lock:
            record = self._events.get(event_id)
        if record is None:
            return None
        return record.check_consistency()

    def list_events(self, status: str = None, kind: str = None,
                    limit: int = 100, offset: int = 0) -> list[EventSummary]:
        check_list_params(status, kind, limit, offset)
        with self._lock:
            records = list(self._events.values())
        summaries = [
            r.summary() for r in records
            if (status is None or r.status == status)
            and (kind is None or r.descriptor.kind == kind)
        ]
        return summaries[offset:offset + limit]

    def record_signatures(self, event_id: str, entries) -> EventRecord:
        with self._lock:
            record = self._events.get(event_id)
            if record is None:
                raise NotFoundError(f"Event not found: {event_id}")
            writes = {e.index: e for e in plan_signature_writes(record, entries)}
            if writes:
                nonces = [
                    replace(n, signature=writes[n.index].signature, outcome=writes[n.index].outcome)
                    if n.index in writes else n
                    for n in record.nonces
                ]
                record = replace(record, nonces=tuple(nonces))
                self._events[event_id] = record
        return record.check_consistency()

    def set_delivery_id(self, event_id: str, kind: str, delivery_id: str) -> None:
        if kind not in (ANNOUNCEMENT, ATTESTATION):
            raise ValidationError(f"Unknown delivery kind {kind!r}")
        with self._lock:
            record = self._events.get(event_id)
            if record is None:
                raise NotFoundError(f"Event not found: {event_id}")
            self._events[event_id] = replace(record, **{f"{kind}_delivery_id": delivery_id})

