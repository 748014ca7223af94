# dlc_oracle/attestor.py
"""
DLC Oracle Attestor - outcome signing with pre-committed nonces

Each signature reuses the nonce whose point was published in the
announcement, re-derived from the oracle key. If the re-derived point
differs from the stored one the oracle key is not the key that made the
announcement, and attestation stops with a ConsistencyError.

Enum events sign one label at its fixed index. Numeric events sign every
digit, most significant first; a partial set of digits is never written.
"""

import logging
from typing import Optional

from . import numeric
from .errors import ConflictError, ConsistencyError, NotFoundError, ValidationError
from .keys import KeyManager, outcome_message
from .models import Attestation, EnumDescriptor, EventRecord, NumericDescriptor, SignatureEntry
from .storage import StorageGateway

log = logging.getLogger("dlc-oracle.attestor")


def digit_labels(digits) -> list[str]:
    return [str(d) for d in digits]


def attested_value(record: EventRecord):
    """Integer a numeric event was attested with, or None if not attested."""
    descriptor = record.descriptor
    if not isinstance(descriptor, NumericDescriptor):
        raise ValidationError(f"Event {record.event_id} is not numeric")
    attestation = record.attestation()
    if attestation is None:
        return None
    return numeric.decode([int(o) for o in attestation.outcomes], descriptor.base,
                          descriptor.is_signed)


class AttestationSigner:
    def __init__(self, keys: KeyManager, storage: StorageGateway):
        self.keys = keys
        self.storage = storage

    def _load(self, event_id: str) -> EventRecord:
        record = self.storage.get_event(event_id)
        if record is None:
            raise NotFoundError(f"Event not found: {event_id}")
        if record.announcement.oracle_pubkey != self.keys.public_key:
            raise ConsistencyError(
                f"Event {event_id} was announced by {record.announcement.oracle_pubkey.hex()}, "
                f"not by this oracle ({self.keys.public_key.hex()})"
            )
        return record

    def _sign(self, record: EventRecord, index: int, label: str) -> SignatureEntry:
        nonce_secret, point = self.keys.derive_nonce_key(record.event_id, index)
        if point != record.nonces[index].nonce_point:
            raise ConsistencyError(
                f"Nonce {record.event_id}/{index} does not re-derive to the announced point"
            )
        msg = outcome_message(label)
        sig = self.keys.sign(msg, nonce_secret)
        if sig[:32] != point or not self.keys.verify(msg, sig):
            raise ConsistencyError(f"Signature for {record.event_id}/{index} failed verification")
        return SignatureEntry(index=index, signature=sig, outcome=label)

    def _existing(self, record: EventRecord, labels) -> Optional[Attestation]:
        existing = record.attestation()
        if existing is None:
            return None
        if existing.outcomes != tuple(labels):
            raise ConflictError(
                f"Event {record.event_id} already attested with {list(existing.outcomes)}"
            )
        log.info(f"Already attested: {record.event_id}")
        return existing

    def attest_enum(self, event_id: str, outcome: str) -> Attestation:
        record = self._load(event_id)
        descriptor = record.descriptor
        if not isinstance(descriptor, EnumDescriptor):
            raise ValidationError(f"Event {event_id} is not an enum event")
        if not isinstance(outcome, str):
            raise ValidationError(f"Outcome must be a string, got {outcome!r}")
        index = descriptor.index_of(outcome)

        existing = self._existing(record, [outcome])
        if existing is not None:
            return existing

        entry = self._sign(record, index, outcome)
        record = self.storage.record_signatures(event_id, [entry])
        log.info(f"Attested: {event_id} -> {outcome!r} (nonce {index})")
        return record.attestation()

    def attest_numeric(self, event_id: str, value: int) -> Attestation:
        record = self._load(event_id)
        descriptor = record.descriptor
        if not isinstance(descriptor, NumericDescriptor):
            raise ValidationError(f"Event {event_id} is not a numeric event")
        digits = numeric.encode(value, descriptor.digit_count, descriptor.base, descriptor.is_signed)
        labels = digit_labels(digits)

        existing = self._existing(record, labels)
        if existing is not None:
            return existing

        entries = [self._sign(record, i, label) for i, label in enumerate(labels)]
        record = self.storage.record_signatures(event_id, entries)
        log.info(f"Attested: {event_id} -> {value} (digits: {digits})")
        return record.attestation()
