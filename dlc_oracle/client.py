# dlc_oracle/client.py
"""
DLC Oracle Reference Client

Fetches announcements and attestations from an oracle server and checks
them independently of the server:
- the announcement signature verifies under the oracle key
- every attestation signature uses the announced nonce point at its index
- every signature verifies against the oracle key and its outcome label
- numeric digits decode to a value inside the announced range

No retries, caching or discovery.
"""

import requests

from . import numeric
from .keys import outcome_message, schnorr_verify
from .models import ENUM, Announcement

TIMEOUT = 10


def fetch_announcement(base_url: str, event_id: str) -> dict:
    r = requests.get(f"{base_url}/dlc/oracle/announcements/{event_id}", timeout=TIMEOUT)
    r.raise_for_status()
    return r.json()


def fetch_attestation(base_url: str, event_id: str) -> dict:
    r = requests.get(f"{base_url}/dlc/oracle/attestations/{event_id}", timeout=TIMEOUT)
    r.raise_for_status()
    return r.json()


def verify_announcement(announcement: dict, oracle_pubkey: str = None) -> bool:
    """Check the announcement signature, optionally pinning the oracle key."""
    try:
        ann = Announcement.from_dict(announcement)
    except (KeyError, TypeError, ValueError):
        return False
    if oracle_pubkey is not None and ann.oracle_pubkey.hex() != oracle_pubkey.lower():
        return False
    if len(ann.nonce_points) != ann.descriptor.nonce_count:
        return False
    return schnorr_verify(ann.oracle_pubkey, ann.digest(), ann.signature)


def verify_attestation(announcement: dict, attestation: dict) -> bool:
    try:
        ann = Announcement.from_dict(announcement)
        pubkey = bytes.fromhex(attestation["oracle_pubkey"])
        outcomes = list(attestation["outcomes"])
        signatures = [bytes.fromhex(s) for s in attestation["signatures"]]
        indexes = list(attestation["nonce_indexes"])
    except (KeyError, TypeError, ValueError):
        return False

    if attestation.get("event_id") != ann.event_id or pubkey != ann.oracle_pubkey:
        return False
    if not outcomes or not len(outcomes) == len(signatures) == len(indexes):
        return False

    if len(ann.nonce_points) != ann.descriptor.nonce_count:
        return False

    descriptor = ann.descriptor
    if descriptor.kind == ENUM:
        if len(outcomes) != 1 or outcomes[0] not in descriptor.outcomes:
            return False
        if indexes[0] != descriptor.outcomes.index(outcomes[0]):
            return False
    else:
        if indexes != list(range(descriptor.digit_count)):
            return False
        try:
            numeric.decode([int(o) for o in outcomes], descriptor.base, descriptor.is_signed)
        except ValueError:
            return False

    for index, outcome, sig in zip(indexes, outcomes, signatures):
        if sig[:32] != ann.nonce_points[index]:
            return False
        if not schnorr_verify(pubkey, outcome_message(outcome), sig):
            return False
    return True


def resolve_event(base_url: str, event_id: str, oracle_pubkey: str = None) -> dict:
    """
    Fetch and verify one event end to end.

    Returns the attestation dict, with "value" for numeric events.
    Raises ValueError on any verification failure.
    """
    ann = fetch_announcement(base_url, event_id)
    if not verify_announcement(ann, oracle_pubkey):
        raise ValueError(f"Announcement signature invalid for {event_id}")
    att = fetch_attestation(base_url, event_id)
    if not verify_attestation(ann, att):
        raise ValueError(f"Attestation invalid for {event_id}")
    return att
