# dlc_oracle/publisher.py
"""
Announcement & attestation publication.

Messages are wrapped in a content-addressed envelope:

  {"kind": "announcement" | "attestation",
   "oracle_pubkey": <hex>,
   "content": <announcement or attestation dict>,
   "refs": [<delivery id of the announcement>],   # attestations only
   "id": sha256(canonical envelope without "id")}

The id doubles as the delivery id recorded against the event. Publishing
happens after signatures are stored, so a failed broadcast never
un-does an attestation. There are no retries here.

The envelope itself is not signed: its id only proves the content is
intact. Authenticity comes from the content, whose announcement signature
and attestation signatures verify under the envelope's oracle_pubkey
(see client.verify_announcement and client.verify_attestation).
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from .errors import PublishError
from .models import Announcement, Attestation, canonical_json
from .storage import ANNOUNCEMENT, ATTESTATION

log = logging.getLogger("dlc-oracle.publisher")


@dataclass(frozen=True)
class AnnouncementMessage:
    announcement: Announcement

    kind = ANNOUNCEMENT

    @property
    def event_id(self) -> str:
        return self.announcement.event_id

    def envelope(self) -> dict:
        return _seal({
            "kind": self.kind,
            "oracle_pubkey": self.announcement.oracle_pubkey.hex(),
            "content": self.announcement.to_dict(),
            "refs": [],
        })


@dataclass(frozen=True)
class AttestationMessage:
    attestation: Attestation
    announcement_delivery_id: Optional[str] = None

    kind = ATTESTATION

    @property
    def event_id(self) -> str:
        return self.attestation.event_id

    def envelope(self) -> dict:
        refs = [self.announcement_delivery_id] if self.announcement_delivery_id else []
        return _seal({
            "kind": self.kind,
            "oracle_pubkey": self.attestation.oracle_pubkey.hex(),
            "content": self.attestation.to_dict(),
            "refs": refs,
        })


def _seal(body: dict) -> dict:
    body["id"] = hashlib.sha256(canonical_json(body)).hexdigest()
    return body


class Publisher(ABC):
    @abstractmethod
    def publish(self, message) -> str:
        """Broadcast a message and return its delivery id, or raise PublishError."""

    def close(self):
        pass


class LogPublisher(Publisher):
    """Used when no relays are configured: log the envelope, deliver nowhere."""

    def publish(self, message) -> str:
        env = message.envelope()
        log.info(f"Publish {env['kind']} {message.event_id}: {env['id']} (no relays configured)")
        log.debug(f"Envelope: {canonical_json(env).decode()}")
        return env["id"]


class RelayPublisher(Publisher):
    """POST envelopes to HTTP relays; delivered if at least one relay accepts."""

    def __init__(self, relays, timeout: float = 5.0, client: httpx.Client = None):
        self.relays = list(relays)
        if not self.relays:
            raise ValueError("RelayPublisher needs at least one relay URL")
        self.client = client or httpx.Client(
            timeout=timeout, headers={"User-Agent": "dlc-oracle/1.0"}
        )

    def publish(self, message) -> str:
        env = message.envelope()
        accepted = 0
        for relay in self.relays:
            try:
                r = self.client.post(relay, json=env)
                r.raise_for_status()
                accepted += 1
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                log.warning(f"Relay {relay} did not accept {env['kind']} {message.event_id}: {e}")
        if accepted == 0:
            raise PublishError(
                f"No relay accepted {env['kind']} for {message.event_id} "
                f"({len(self.relays)} tried)"
            )
        log.info(f"Published {env['kind']} {message.event_id} to {accepted}/{len(self.relays)} relays")
        return env["id"]

    def close(self):
        self.client.close()
