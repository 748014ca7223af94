# dlc_oracle/builder.py
"""
DLC Oracle Event Builder - announcement construction & nonce allocation

Enum events get one nonce per outcome label, in caller order. Numeric
events get one nonce per digit, most significant first. The announcement
is signed with the oracle's long-term key and persisted together with its
nonce rows as one atomic unit.
"""

import logging
import re

from .errors import ConflictError, ConsistencyError, ValidationError
from .keys import KeyManager
from .models import (
    Announcement,
    EnumDescriptor,
    Nonce,
    NumericDescriptor,
    announcement_digest,
)
from .storage import StorageGateway

log = logging.getLogger("dlc-oracle.builder")

EVENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:\-]{0,127}$")


def validate_event_id(event_id) -> str:
    if not isinstance(event_id, str) or not EVENT_ID_PATTERN.match(event_id):
        raise ValidationError(
            f"Invalid event id {event_id!r}: 1-128 chars of [A-Za-z0-9._:-], "
            "starting with a letter or digit"
        )
    return event_id


class EventBuilder:
    def __init__(self, keys: KeyManager, storage: StorageGateway):
        self.keys = keys
        self.storage = storage

    def allocate_nonces(self, event_id: str, count: int) -> list[Nonce]:
        nonces = []
        for index in range(count):
            _, point = self.keys.derive_nonce_key(event_id, index)
            nonces.append(Nonce(event_id=event_id, index=index, nonce_point=point))
        if len({n.nonce_point for n in nonces}) != count:
            # Distinct HMAC inputs colliding would mean a broken derivation.
            raise ConsistencyError(f"Nonce points for {event_id} are not pairwise distinct")
        return nonces

    def build_announcement(self, event_id: str, descriptor, maturity: int):
        """Validate inputs, allocate nonces and sign; no storage access."""
        validate_event_id(event_id)
        if not isinstance(descriptor, (EnumDescriptor, NumericDescriptor)):
            raise ValidationError(f"Unsupported descriptor {descriptor!r}")
        descriptor.validate()
        if isinstance(maturity, bool) or not isinstance(maturity, int) or maturity < 0:
            raise ValidationError(f"Maturity must be a non-negative epoch, got {maturity!r}")

        nonces = self.allocate_nonces(event_id, descriptor.nonce_count)
        nonce_points = [n.nonce_point for n in nonces]
        digest = announcement_digest(event_id, self.keys.public_key, descriptor,
                                     nonce_points, maturity)
        announcement = Announcement(
            event_id=event_id,
            oracle_pubkey=self.keys.public_key,
            descriptor=descriptor,
            nonce_points=nonce_points,
            maturity=maturity,
            signature=self.keys.sign_announcement(digest),
        )
        return announcement, nonces

    def create_event(self, event_id: str, descriptor, maturity: int) -> Announcement:
        announcement, nonces = self.build_announcement(event_id, descriptor, maturity)
        if self.storage.get_event(event_id) is not None:
            raise ConflictError(f"Event already exists: {event_id}")
        self.storage.create_event(announcement, nonces)
        log.info(f"Announced: {event_id} ({descriptor.kind}, {len(nonces)} nonces)")
        return announcement

    def create_enum_event(self, event_id: str, outcomes, maturity: int) -> Announcement:
        return self.create_event(event_id, EnumDescriptor(outcomes=tuple(outcomes)), maturity)

    def create_numeric_event(self, event_id: str, maturity: int, base: int = 10,
                             digit_count: int = None, max_value: int = None,
                             is_signed: bool = False, unit: str = "",
                             precision: int = 0) -> Announcement:
        """
        Create a digit decomposition event. Pass digit_count directly, or
        max_value to get the smallest digit_count covering it.
        """
        if digit_count is None and max_value is None:
            raise ValidationError("Numeric event needs digit_count or max_value")
        if digit_count is not None:
            descriptor = NumericDescriptor(digit_count=digit_count, base=base, is_signed=is_signed,
                                           unit=unit, precision=precision)
        else:
            descriptor = NumericDescriptor.for_range(max_value, base=base, is_signed=is_signed,
                                                     unit=unit, precision=precision)
        return self.create_event(event_id, descriptor, maturity)
