# dlc_oracle/keys.py
"""
DLC Oracle Key Manager - BIP340 Schnorr over secp256k1

The oracle holds one long-term secp256k1 key. Nonces are never stored:
each (event_id, index) pair maps to a nonce secret through HMAC-SHA256
keyed with the oracle secret, so the nonce can be re-derived at
attestation time and the published point reproduced exactly.

Public keys and nonce points are x-only (32 bytes) as in BIP340.
"""

import hashlib
import hmac
import os
from dataclasses import dataclass
from pathlib import Path

from coincurve import PrivateKey, PublicKeyXOnly

from .errors import ConsistencyError, ValidationError

CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
NONCE_TAG = b"DLC/oracle/nonce/v1"
MAX_DERIVATION_ATTEMPTS = 256


def tagged_hash(tag: str, data: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def _xonly(secret: bytes):
    """Return (scalar with even-y point, x-only point bytes) for a secret."""
    compressed = PrivateKey(secret).public_key.format()
    scalar = int.from_bytes(secret, "big")
    if compressed[0] == 0x03:
        scalar = CURVE_ORDER - scalar
    return scalar, compressed[1:]


def challenge(r_point: bytes, pubkey: bytes, message: bytes) -> int:
    e = tagged_hash("BIP0340/challenge", r_point + pubkey + message)
    return int.from_bytes(e, "big") % CURVE_ORDER


def schnorr_verify(pubkey: bytes, message: bytes, signature: bytes) -> bool:
    """BIP340 verification by libsecp256k1; malformed input verifies as False."""
    if len(signature) != 64 or len(pubkey) != 32:
        return False
    try:
        return PublicKeyXOnly(pubkey).verify(signature, message)
    except ValueError:
        return False


def outcome_message(label: str) -> bytes:
    """32-byte message an attestation signs for an outcome label."""
    return hashlib.sha256(label.encode("utf-8")).digest()


@dataclass(frozen=True)
class OracleKeyPair:
    """Oracle master secret and its x-only public key."""

    secret: bytes
    public_key: bytes

    @classmethod
    def from_secret(cls, secret: bytes) -> "OracleKeyPair":
        if len(secret) != 32:
            raise ValidationError("Oracle secret must be 32 bytes")
        try:
            _, public_key = _xonly(secret)
        except ValueError as e:
            raise ValidationError(f"Invalid oracle secret: {e}") from e
        return cls(secret=secret, public_key=public_key)

    @classmethod
    def from_hex(cls, sk_hex: str) -> "OracleKeyPair":
        try:
            secret = bytes.fromhex(sk_hex.strip())
        except ValueError as e:
            raise ValidationError("Oracle secret is not valid hex") from e
        return cls.from_secret(secret)

    @classmethod
    def generate(cls) -> "OracleKeyPair":
        return cls.from_secret(PrivateKey().secret)

    def __repr__(self):
        return f"OracleKeyPair(public_key={self.public_key.hex()})"


def load_oracle_key(sk_path: Path) -> OracleKeyPair:
    sk_path = Path(sk_path)
    if not sk_path.exists():
        raise FileNotFoundError(f"Oracle key not found at {sk_path}")
    return OracleKeyPair.from_hex(sk_path.read_text())


def load_or_create_key(sk_path: Path) -> OracleKeyPair:
    """Load the persistent oracle key or generate a new one (mode 0600)."""
    sk_path = Path(sk_path)
    if sk_path.exists():
        return load_oracle_key(sk_path)

    keypair = OracleKeyPair.generate()
    sk_path.parent.mkdir(parents=True, exist_ok=True)
    sk_path.write_text(keypair.secret.hex())
    os.chmod(str(sk_path), 0o600)
    return keypair


class KeyManager:
    """
    Signing operations for one oracle key.

    Holds nothing mutable, so a single instance can be shared by any
    number of threads.
    """

    def __init__(self, keypair: OracleKeyPair):
        self._keypair = keypair
        self._scalar, _ = _xonly(keypair.secret)

    @property
    def public_key(self) -> bytes:
        return self._keypair.public_key

    def derive_nonce_key(self, event_id: str, index: int):
        """Return (nonce_secret, x-only nonce_point) for a nonce slot."""
        if index < 0:
            raise ValidationError(f"Nonce index must be >= 0, got {index}")
        eid = event_id.encode("utf-8")
        base = NONCE_TAG + len(eid).to_bytes(4, "big") + eid + index.to_bytes(4, "big")
        for counter in range(MAX_DERIVATION_ATTEMPTS):
            digest = hmac.new(
                self._keypair.secret, base + counter.to_bytes(4, "big"), hashlib.sha256
            ).digest()
            k_int = int.from_bytes(digest, "big")
            if 0 < k_int < CURVE_ORDER:
                secret = k_int.to_bytes(32, "big")
                _, point = _xonly(secret)
                return secret, point
        raise ConsistencyError(
            f"Could not derive nonce for {event_id}/{index} "
            f"after {MAX_DERIVATION_ATTEMPTS} attempts"
        )

    def sign(self, message: bytes, nonce_secret: bytes) -> bytes:
        """
        BIP340 signature with an externally fixed nonce.

        The R value of the result is the x-only point of nonce_secret, which
        is what lets a published nonce point commit to the signature.
        """
        k_int, r_point = _xonly(nonce_secret)
        e_int = challenge(r_point, self.public_key, message)
        s_int = (k_int + e_int * self._scalar) % CURVE_ORDER
        return r_point + s_int.to_bytes(32, "big")

    def sign_announcement(self, digest: bytes) -> bytes:
        """Ordinary deterministic BIP340 signature with the long-term key."""
        return PrivateKey(self._keypair.secret).sign_schnorr(digest)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return schnorr_verify(self.public_key, message, signature)
