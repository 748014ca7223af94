# dlc_oracle/models.py
"""
Oracle data model: event descriptors, announcements, nonces, attestations.

All byte fields (keys, points, signatures) are raw bytes in memory and
lowercase hex on the wire and in storage.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Optional

from . import numeric
from .errors import ConsistencyError, ValidationError

ENUM = "enum"
NUMERIC = "numeric"

ANNOUNCED = "announced"
ATTESTED = "attested"

MAX_OUTCOMES = 1024
MAX_DIGITS = 64


def canonical_json(obj) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class EnumDescriptor:
    """Outcome labels; a label's position is its permanent nonce index."""

    outcomes: tuple

    kind = ENUM

    def __post_init__(self):
        object.__setattr__(self, "outcomes", tuple(self.outcomes))

    def validate(self):
        if not self.outcomes:
            raise ValidationError("Must have at least one outcome")
        if len(self.outcomes) > MAX_OUTCOMES:
            raise ValidationError(
                f"At most {MAX_OUTCOMES} outcomes per event, got {len(self.outcomes)}"
            )
        for label in self.outcomes:
            if not isinstance(label, str) or not label:
                raise ValidationError(f"Outcome labels must be non-empty strings, got {label!r}")
        if len(set(self.outcomes)) != len(self.outcomes):
            raise ValidationError("Outcome labels must be distinct")

    @property
    def nonce_count(self) -> int:
        return len(self.outcomes)

    def index_of(self, label: str) -> int:
        try:
            return self.outcomes.index(label)
        except ValueError:
            raise ValidationError(f"Unknown outcome {label!r}") from None

    def to_dict(self):
        return {"type": ENUM, "outcomes": list(self.outcomes)}


@dataclass(frozen=True)
class NumericDescriptor:
    """
    Digit decomposition descriptor. `precision` is the power-of-ten exponent
    of one unit of the attested integer and is informational only.
    """

    digit_count: int
    base: int = 10
    is_signed: bool = False
    unit: str = ""
    precision: int = 0

    kind = NUMERIC

    @classmethod
    def for_range(cls, max_value: int, base: int = 10, is_signed: bool = False,
                  unit: str = "", precision: int = 0) -> "NumericDescriptor":
        digit_count = numeric.digits_for_range(max_value, base, is_signed)
        return cls(digit_count=digit_count, base=base, is_signed=is_signed,
                   unit=unit, precision=precision)

    def validate(self):
        if isinstance(self.digit_count, int) and self.digit_count > MAX_DIGITS:
            raise ValidationError(f"At most {MAX_DIGITS} digits per event, got {self.digit_count}")
        numeric.value_range(self.digit_count, self.base, self.is_signed)
        if not isinstance(self.is_signed, bool):
            raise ValidationError("is_signed must be a boolean")
        if not isinstance(self.unit, str):
            raise ValidationError("unit must be a string")
        if isinstance(self.precision, bool) or not isinstance(self.precision, int):
            raise ValidationError("precision must be an integer")

    @property
    def nonce_count(self) -> int:
        return self.digit_count

    @property
    def range(self) -> tuple[int, int]:
        return numeric.value_range(self.digit_count, self.base, self.is_signed)

    def to_dict(self):
        return {
            "type": NUMERIC,
            "base": self.base,
            "digit_count": self.digit_count,
            "is_signed": self.is_signed,
            "unit": self.unit,
            "precision": self.precision,
        }


def descriptor_from_dict(data: dict):
    kind = data.get("type")
    if kind == ENUM:
        return EnumDescriptor(outcomes=tuple(data["outcomes"]))
    if kind == NUMERIC:
        return NumericDescriptor(
            digit_count=data["digit_count"],
            base=data["base"],
            is_signed=data.get("is_signed", False),
            unit=data.get("unit", ""),
            precision=data.get("precision", 0),
        )
    raise ValidationError(f"Unknown descriptor type {kind!r}")


def announcement_body(event_id, oracle_pubkey, descriptor, nonce_points, maturity) -> dict:
    return {
        "event_id": event_id,
        "oracle_pubkey": oracle_pubkey.hex(),
        "descriptor": descriptor.to_dict(),
        "nonce_points": [p.hex() for p in nonce_points],
        "maturity": maturity,
    }


def announcement_digest(event_id, oracle_pubkey, descriptor, nonce_points, maturity) -> bytes:
    """sha256 of the canonical announcement body; this is what gets signed."""
    body = announcement_body(event_id, oracle_pubkey, descriptor, nonce_points, maturity)
    return hashlib.sha256(canonical_json(body)).digest()


@dataclass(frozen=True)
class Announcement:
    event_id: str
    oracle_pubkey: bytes
    descriptor: object
    nonce_points: tuple
    maturity: int
    signature: bytes

    def __post_init__(self):
        object.__setattr__(self, "nonce_points", tuple(self.nonce_points))

    def digest(self) -> bytes:
        return announcement_digest(self.event_id, self.oracle_pubkey, self.descriptor,
                                   self.nonce_points, self.maturity)

    def to_dict(self):
        body = announcement_body(self.event_id, self.oracle_pubkey, self.descriptor,
                                 self.nonce_points, self.maturity)
        body["announcement_signature"] = self.signature.hex()
        return body

    @classmethod
    def from_dict(cls, data: dict) -> "Announcement":
        return cls(
            event_id=data["event_id"],
            oracle_pubkey=bytes.fromhex(data["oracle_pubkey"]),
            descriptor=descriptor_from_dict(data["descriptor"]),
            nonce_points=tuple(bytes.fromhex(p) for p in data["nonce_points"]),
            maturity=data["maturity"],
            signature=bytes.fromhex(data["announcement_signature"]),
        )


@dataclass(frozen=True)
class Nonce:
    event_id: str
    index: int
    nonce_point: bytes
    signature: Optional[bytes] = None
    outcome: Optional[str] = None

    @property
    def signed(self) -> bool:
        return self.signature is not None


@dataclass(frozen=True)
class SignatureEntry:
    """One nonce's signature and the outcome label it signs."""

    index: int
    signature: bytes
    outcome: str


@dataclass(frozen=True)
class Attestation:
    event_id: str
    oracle_pubkey: bytes
    outcomes: tuple
    signatures: tuple
    nonce_indexes: tuple

    def __post_init__(self):
        object.__setattr__(self, "outcomes", tuple(self.outcomes))
        object.__setattr__(self, "signatures", tuple(self.signatures))
        object.__setattr__(self, "nonce_indexes", tuple(self.nonce_indexes))

    def to_dict(self):
        return {
            "event_id": self.event_id,
            "oracle_pubkey": self.oracle_pubkey.hex(),
            "outcomes": list(self.outcomes),
            "signatures": [s.hex() for s in self.signatures],
            "nonce_indexes": list(self.nonce_indexes),
        }


@dataclass(frozen=True)
class EventSummary:
    event_id: str
    kind: str
    maturity: int
    status: str
    nonce_count: int
    created_at: str

    def to_dict(self):
        return {
            "event_id": self.event_id,
            "type": self.kind,
            "maturity": self.maturity,
            "status": self.status,
            "nonce_count": self.nonce_count,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class EventRecord:
    """An announcement with its nonce rows as read back from storage."""

    announcement: Announcement
    nonces: tuple
    created_at: str
    announcement_delivery_id: Optional[str] = None
    attestation_delivery_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "nonces", tuple(sorted(self.nonces, key=lambda n: n.index)))

    @property
    def event_id(self) -> str:
        return self.announcement.event_id

    @property
    def descriptor(self):
        return self.announcement.descriptor

    @property
    def signed_nonces(self) -> tuple:
        return tuple(n for n in self.nonces if n.signed)

    @property
    def status(self) -> str:
        return ATTESTED if self.signed_nonces else ANNOUNCED

    def check_consistency(self) -> "EventRecord":
        """Raise ConsistencyError unless nonce rows match the announcement."""
        ann = self.announcement
        expected = ann.descriptor.nonce_count
        if len(self.nonces) != expected or len(ann.nonce_points) != expected:
            raise ConsistencyError(
                f"Event {ann.event_id} has {len(self.nonces)} nonces, expected {expected}"
            )
        for i, nonce in enumerate(self.nonces):
            if nonce.index != i or nonce.nonce_point != ann.nonce_points[i]:
                raise ConsistencyError(f"Event {ann.event_id} nonce {i} does not match announcement")
        signed = len(self.signed_nonces)
        if ann.descriptor.kind == ENUM and signed > 1:
            raise ConsistencyError(f"Enum event {ann.event_id} has {signed} signed nonces")
        if ann.descriptor.kind == NUMERIC and signed not in (0, expected):
            raise ConsistencyError(
                f"Numeric event {ann.event_id} is partially signed ({signed}/{expected})"
            )
        return self

    def attestation(self) -> Optional[Attestation]:
        signed = self.signed_nonces
        if not signed:
            return None
        return Attestation(
            event_id=self.event_id,
            oracle_pubkey=self.announcement.oracle_pubkey,
            outcomes=[n.outcome for n in signed],
            signatures=[n.signature for n in signed],
            nonce_indexes=[n.index for n in signed],
        )

    def summary(self) -> EventSummary:
        return EventSummary(
            event_id=self.event_id,
            kind=self.descriptor.kind,
            maturity=self.announcement.maturity,
            status=self.status,
            nonce_count=len(self.nonces),
            created_at=self.created_at,
        )
