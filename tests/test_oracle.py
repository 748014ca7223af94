import pytest

from conftest import MATURITY
from dlc_oracle import EnumDescriptor, NumericDescriptor, Oracle
from dlc_oracle.errors import ConsistencyError, NotFoundError
from dlc_oracle.keys import schnorr_verify


def test_end_to_end_enum(oracle):
    ann = oracle.create_enum_event("weather", ["sunny", "rainy"], MATURITY)
    assert oracle.get_announcement("weather") == ann
    assert oracle.get_attestation("weather") is None

    att = oracle.attest_enum("weather", "sunny")
    assert oracle.get_attestation("weather") == att
    assert schnorr_verify(oracle.public_key, ann.digest(), ann.signature)


def test_create_event_with_descriptor(oracle):
    oracle.create_event("e", EnumDescriptor(outcomes=("x", "y")), MATURITY)
    oracle.create_event("n", NumericDescriptor(digit_count=4, base=16), MATURITY)
    kinds = [(s.event_id, s.kind) for s in oracle.list_events()]
    assert kinds == [("e", "enum"), ("n", "numeric")]


def test_unknown_event(oracle):
    with pytest.raises(NotFoundError):
        oracle.get_event("missing")
    with pytest.raises(NotFoundError):
        oracle.get_attestation("missing")


def test_storage_is_bound_to_one_key(keypair, other_keypair, storage):
    Oracle(keypair, storage)
    with pytest.raises(ConsistencyError):
        Oracle(other_keypair, storage)


def test_two_oracles_on_one_store_agree(keypair, sqlite_storage):
    first = Oracle(keypair, sqlite_storage)
    second = Oracle(keypair, sqlite_storage)
    first.create_numeric_event("btc", MATURITY, base=2, digit_count=8)
    assert second.attest_numeric("btc", 200) == first.attest_numeric("btc", 200)
