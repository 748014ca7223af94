# dlc_oracle/errors.py
"""
DLC Oracle error taxonomy.

ValidationError and ConflictError are caller mistakes and are never retried.
StorageError is transient; every write the oracle exposes is idempotent, so
callers may retry it. ConsistencyError means corrupted state or a key
mismatch and must reach an operator.
"""


class OracleError(Exception):
    """Base class for all oracle errors."""


class ValidationError(OracleError, ValueError):
    """Malformed descriptor, unknown outcome or out-of-range value."""


class NotFoundError(OracleError, LookupError):
    """The requested event does not exist."""


class ConflictError(OracleError):
    """Duplicate event id, or an attestation disagreeing with a recorded one."""


class StorageError(OracleError):
    """Transient persistence failure."""


class ConsistencyError(OracleError):
    """Persisted state or key material does not add up."""


class PublishError(OracleError):
    """No relay accepted a message. Never affects signing durability."""
