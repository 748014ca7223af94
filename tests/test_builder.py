import pytest

from conftest import MATURITY
from dlc_oracle.builder import EventBuilder, validate_event_id
from dlc_oracle.errors import ConflictError, ConsistencyError, ValidationError
from dlc_oracle.keys import KeyManager, schnorr_verify
from dlc_oracle.models import (
    ANNOUNCED,
    MAX_DIGITS,
    MAX_OUTCOMES,
    EnumDescriptor,
    NumericDescriptor,
)


@pytest.fixture
def builder(keypair, storage):
    return EventBuilder(KeyManager(keypair), storage)


def test_enum_event_gets_one_nonce_per_outcome(builder, storage, keypair):
    ann = builder.create_enum_event("weather-2030-01-01", ["sunny", "rainy", "snowy"], MATURITY)

    assert ann.oracle_pubkey == keypair.public_key
    assert len(ann.nonce_points) == 3
    assert len(set(ann.nonce_points)) == 3
    assert schnorr_verify(ann.oracle_pubkey, ann.digest(), ann.signature)

    record = storage.get_event("weather-2030-01-01")
    assert record.status == ANNOUNCED
    assert [n.index for n in record.nonces] == [0, 1, 2]
    assert [n.nonce_point for n in record.nonces] == list(ann.nonce_points)
    assert record.attestation() is None


def test_nonce_points_are_those_the_key_derives(builder, keypair):
    ann = builder.create_enum_event("ev", ["a", "b"], MATURITY)
    km = KeyManager(keypair)
    assert list(ann.nonce_points) == [km.derive_nonce_key("ev", i)[1] for i in range(2)]


def test_numeric_event(builder, storage):
    ann = builder.create_numeric_event("BTCUSD-2030", MATURITY, base=2, digit_count=20, unit="usd")
    assert ann.descriptor == NumericDescriptor(digit_count=20, base=2, unit="usd")
    assert len(ann.nonce_points) == 20
    assert storage.get_event("BTCUSD-2030").descriptor.digit_count == 20


def test_numeric_event_from_max_value(builder):
    ann = builder.create_numeric_event("temp", MATURITY, base=10, max_value=50, is_signed=True)
    assert ann.descriptor.digit_count == 3
    assert ann.descriptor.range == (-500, 499)


def test_numeric_event_needs_a_size(builder):
    with pytest.raises(ValidationError):
        builder.create_numeric_event("temp", MATURITY)


def test_duplicate_event_id(builder):
    builder.create_enum_event("dup", ["yes", "no"], MATURITY)
    with pytest.raises(ConflictError):
        builder.create_enum_event("dup", ["yes", "no"], MATURITY)


def test_same_id_conflicts_even_with_other_descriptor(builder):
    builder.create_enum_event("dup", ["yes", "no"], MATURITY)
    with pytest.raises(ConflictError):
        builder.create_numeric_event("dup", MATURITY, digit_count=2)


@pytest.mark.parametrize("outcomes", [[], ["a", "a"], ["a", ""], ["a", 3]])
def test_bad_outcome_labels(builder, storage, outcomes):
    with pytest.raises(ValidationError):
        builder.create_enum_event("bad", outcomes, MATURITY)
    assert storage.get_event("bad") is None


@pytest.mark.parametrize("event_id", ["", " x", "-start", "a/b", "a" * 129, None, 7])
def test_bad_event_ids(event_id):
    with pytest.raises(ValidationError):
        validate_event_id(event_id)


@pytest.mark.parametrize("event_id", ["x", "BTCUSD-2030-01-01T00:00:00", "a.b_c", "a" * 128])
def test_good_event_ids(event_id):
    assert validate_event_id(event_id) == event_id


@pytest.mark.parametrize("maturity", [-1, "1900000000", 1.5, True])
def test_bad_maturity(builder, maturity):
    with pytest.raises(ValidationError):
        builder.create_enum_event("ev", ["a", "b"], maturity)


@pytest.mark.parametrize("descriptor", [
    NumericDescriptor(digit_count=0),
    NumericDescriptor(digit_count=3, base=1),
    NumericDescriptor(digit_count=3, precision=1.5),
])
def test_bad_numeric_descriptor(builder, descriptor):
    with pytest.raises(ValidationError):
        builder.create_event("ev", descriptor, MATURITY)


def test_unsupported_descriptor(builder):
    with pytest.raises(ValidationError):
        builder.create_event("ev", {"type": "enum", "outcomes": ["a"]}, MATURITY)


def test_failed_create_leaves_nothing_behind(keypair, sqlite_storage):
    builder = EventBuilder(KeyManager(keypair), sqlite_storage)
    builder.create_enum_event("first", ["a", "b"], MATURITY)
    ann, nonces = builder.build_announcement("first", EnumDescriptor(outcomes=("a", "b")), MATURITY)
    # same points under a new id collide with the rows of "first"
    clone = type(ann)(
        event_id="second", oracle_pubkey=ann.oracle_pubkey, descriptor=ann.descriptor,
        nonce_points=ann.nonce_points, maturity=ann.maturity, signature=ann.signature,
    )
    clone_nonces = [type(n)(event_id="second", index=n.index, nonce_point=n.nonce_point)
                    for n in nonces]
    with pytest.raises(ConsistencyError):
        sqlite_storage.create_event(clone, clone_nonces)
    assert sqlite_storage.get_event("second") is None
    assert [s.event_id for s in sqlite_storage.list_events()] == ["first"]


def test_outcome_count_is_capped(builder, storage):
    labels = [f"o{i}" for i in range(MAX_OUTCOMES)]
    assert len(builder.create_enum_event("wide", labels, MATURITY).nonce_points) == MAX_OUTCOMES
    with pytest.raises(ValidationError):
        builder.create_enum_event("too-wide", labels + ["extra"], MATURITY)
    assert storage.get_event("too-wide") is None


def test_digit_count_is_capped(builder, storage):
    ann = builder.create_numeric_event("long", MATURITY, base=2, digit_count=MAX_DIGITS)
    assert len(ann.nonce_points) == MAX_DIGITS
    with pytest.raises(ValidationError):
        builder.create_numeric_event("too-long", MATURITY, base=2, digit_count=MAX_DIGITS + 1)
    with pytest.raises(ValidationError):
        builder.create_numeric_event("huge", MATURITY, digit_count=10 ** 6)
    with pytest.raises(ValidationError):
        builder.create_numeric_event("huge-range", MATURITY, base=2, max_value=2 ** 64)
    assert storage.get_event("too-long") is None
