# dlc_oracle/oracle.py
"""
DLC Oracle - announcement, attestation and publication in one place.

The key pair is passed in explicitly; nothing here reads global state, so
tests can run several oracles side by side with fixed keys.
"""

import logging
from typing import Optional

from .attestor import AttestationSigner
from .builder import EventBuilder
from .errors import NotFoundError, PublishError, StorageError
from .keys import KeyManager, OracleKeyPair
from .models import Announcement, Attestation, EventRecord
from .publisher import AnnouncementMessage, AttestationMessage, Publisher
from .storage import StorageGateway

log = logging.getLogger("dlc-oracle")


class Oracle:
    def __init__(self, keypair: OracleKeyPair, storage: StorageGateway,
                 publisher: Publisher = None):
        self.keys = KeyManager(keypair)
        self.storage = storage
        self.publisher = publisher
        storage.bind_oracle_pubkey(self.keys.public_key)
        self.builder = EventBuilder(self.keys, storage)
        self.signer = AttestationSigner(self.keys, storage)

    @property
    def public_key(self) -> bytes:
        return self.keys.public_key

    # -------------------------
    # Announcements
    # -------------------------

    def create_event(self, event_id: str, descriptor, maturity: int) -> Announcement:
        ann = self.builder.create_event(event_id, descriptor, maturity)
        self._publish(AnnouncementMessage(ann))
        return ann

    def create_enum_event(self, event_id: str, outcomes, maturity: int) -> Announcement:
        ann = self.builder.create_enum_event(event_id, outcomes, maturity)
        self._publish(AnnouncementMessage(ann))
        return ann

    def create_numeric_event(self, event_id: str, maturity: int, **kwargs) -> Announcement:
        ann = self.builder.create_numeric_event(event_id, maturity, **kwargs)
        self._publish(AnnouncementMessage(ann))
        return ann

    # -------------------------
    # Attestations
    # -------------------------

    def attest_enum(self, event_id: str, outcome: str) -> Attestation:
        att = self.signer.attest_enum(event_id, outcome)
        self._publish_attestation(att)
        return att

    def attest_numeric(self, event_id: str, value: int) -> Attestation:
        att = self.signer.attest_numeric(event_id, value)
        self._publish_attestation(att)
        return att

    # -------------------------
    # Queries
    # -------------------------

    def get_event(self, event_id: str) -> EventRecord:
        record = self.storage.get_event(event_id)
        if record is None:
            raise NotFoundError(f"Event not found: {event_id}")
        return record

    def get_announcement(self, event_id: str) -> Announcement:
        return self.get_event(event_id).announcement

    def get_attestation(self, event_id: str) -> Optional[Attestation]:
        return self.get_event(event_id).attestation()

    def list_events(self, status: str = None, kind: str = None, limit: int = 100, offset: int = 0):
        return self.storage.list_events(status=status, kind=kind, limit=limit, offset=offset)

    # -------------------------
    # Publication
    # -------------------------

    def _publish_attestation(self, att: Attestation):
        if self.publisher is None:
            return None
        try:
            record = self.storage.get_event(att.event_id)
        except StorageError as e:
            log.warning(f"Skipping attestation publish for {att.event_id}: {e}")
            return None
        if record is not None and record.attestation_delivery_id:
            return record.attestation_delivery_id
        ref = record.announcement_delivery_id if record is not None else None
        return self._publish(AttestationMessage(att, announcement_delivery_id=ref))

    def _publish(self, message):
        """Publish after the fact; failures are logged, never raised."""
        if self.publisher is None:
            return None
        try:
            delivery_id = self.publisher.publish(message)
        except PublishError as e:
            log.warning(f"Publish failed for {message.kind} {message.event_id}: {e}")
            return None
        except Exception:
            # the event is already durable at this point
            log.exception(f"Publisher error for {message.kind} {message.event_id}")
            return None
        try:
            self.storage.set_delivery_id(message.event_id, message.kind, delivery_id)
        except StorageError as e:
            log.warning(f"Could not record delivery id {delivery_id} for {message.event_id}: {e}")
        return delivery_id
