import hashlib
import os
import stat

import pytest
from coincurve import PublicKeyXOnly

from dlc_oracle import keys
from dlc_oracle.errors import ConsistencyError, ValidationError
from dlc_oracle.keys import (
    CURVE_ORDER,
    KeyManager,
    OracleKeyPair,
    load_or_create_key,
    load_oracle_key,
    outcome_message,
    schnorr_verify,
)


@pytest.fixture
def km(keypair):
    return KeyManager(keypair)


def test_nonce_derivation_is_deterministic(keypair):
    a = KeyManager(keypair).derive_nonce_key("BTCUSD-2030", 3)
    b = KeyManager(keypair).derive_nonce_key("BTCUSD-2030", 3)
    assert a == b
    secret, point = a
    assert 0 < int.from_bytes(secret, "big") < CURVE_ORDER
    assert len(point) == 32


def test_nonce_derivation_depends_on_every_input(km, other_keypair):
    base = km.derive_nonce_key("event", 0)
    assert km.derive_nonce_key("event", 1) != base
    assert km.derive_nonce_key("event2", 0) != base
    assert KeyManager(other_keypair).derive_nonce_key("event", 0) != base


def test_nonce_derivation_gives_up_after_bounded_attempts(km, monkeypatch):
    monkeypatch.setattr(keys, "CURVE_ORDER", 1)
    with pytest.raises(ConsistencyError):
        km.derive_nonce_key("event", 0)


def test_negative_index_rejected(km):
    with pytest.raises(ValidationError):
        km.derive_nonce_key("event", -1)


def test_fixed_nonce_signature_commits_to_nonce_point(km):
    secret, point = km.derive_nonce_key("event", 0)
    msg = outcome_message("rainy")
    sig = km.sign(msg, secret)
    assert len(sig) == 64
    assert sig[:32] == point
    assert km.verify(msg, sig)
    assert not km.verify(outcome_message("sunny"), sig)


def test_fixed_nonce_signature_is_reproducible(km):
    secret, _ = km.derive_nonce_key("event", 7)
    msg = outcome_message("1")
    first = km.sign(msg, secret)
    secret_again, _ = km.derive_nonce_key("event", 7)
    assert km.sign(msg, secret_again) == first


def test_signatures_verify_under_libsecp256k1(km):
    secret, _ = km.derive_nonce_key("event", 0)
    msg = outcome_message("sunny")
    sig = km.sign(msg, secret)
    assert PublicKeyXOnly(km.public_key).verify(sig, msg)

    digest = hashlib.sha256(b"announcement").digest()
    ann_sig = km.sign_announcement(digest)
    assert PublicKeyXOnly(km.public_key).verify(ann_sig, digest)
    assert schnorr_verify(km.public_key, digest, ann_sig)


def test_schnorr_verify_rejects_garbage(km):
    digest = hashlib.sha256(b"x").digest()
    sig = km.sign_announcement(digest)
    assert not schnorr_verify(km.public_key, digest, sig[:63])
    assert not schnorr_verify(km.public_key, digest, sig[:32] + b"\x00" * 32)
    assert not schnorr_verify(km.public_key, digest, sig[:32] + b"\xff" * 32)
    assert not schnorr_verify(km.public_key, hashlib.sha256(b"y").digest(), sig)


def test_schnorr_verify_rejects_bad_public_keys(km, other_keypair):
    digest = hashlib.sha256(b"x").digest()
    sig = km.sign_announcement(digest)
    assert schnorr_verify(km.public_key, digest, sig)
    assert not schnorr_verify(other_keypair.public_key, digest, sig)
    assert not schnorr_verify(km.public_key[:31], digest, sig)
    # x >= field prime is not a valid x-only key
    assert not schnorr_verify(b"\xff" * 32, digest, sig)


def test_fixed_nonce_signatures_verify_under_library_verifier(km):
    for index, label in enumerate(["sunny", "rainy", "0", "9"]):
        secret, point = km.derive_nonce_key("weather", index)
        sig = km.sign(outcome_message(label), secret)
        assert PublicKeyXOnly(km.public_key).verify(sig, outcome_message(label))
        assert schnorr_verify(km.public_key, outcome_message(label), sig)


def test_keypair_validation():
    with pytest.raises(ValidationError):
        OracleKeyPair.from_hex("zz" * 32)
    with pytest.raises(ValidationError):
        OracleKeyPair.from_hex("01" * 31)
    with pytest.raises(ValidationError):
        OracleKeyPair.from_hex("00" * 32)
    kp = OracleKeyPair.from_hex("01" * 32)
    assert kp.secret.hex() not in repr(kp)


def test_load_or_create_key(tmp_path):
    path = tmp_path / "keys" / "oracle_sk.hex"
    created = load_or_create_key(path)
    assert path.exists()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert load_or_create_key(path) == created
    assert load_oracle_key(path) == created


def test_load_oracle_key_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_oracle_key(tmp_path / "nope.hex")
