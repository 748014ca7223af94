"""
DLC Oracle - Schnorr announcements and attestations for Discreet Log Contracts.
"""

from .errors import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    OracleError,
    PublishError,
    StorageError,
    ValidationError,
)
from .keys import KeyManager, OracleKeyPair
from .models import Announcement, Attestation, EnumDescriptor, NumericDescriptor
from .oracle import Oracle
from .sqlite_storage import SqliteStorage
from .storage import MemoryStorage, StorageGateway

__version__ = "1.0.0"
