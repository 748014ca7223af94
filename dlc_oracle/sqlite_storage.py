# dlc_oracle/sqlite_storage.py
"""
Durable SQLite storage for oracle events.

Schema:
  events(event_id PK, kind, oracle_pubkey, descriptor_blob, nonce_points,
         maturity, announcement_signature, announcement_delivery_id,
         attestation_delivery_id, created_at)
  nonces(event_id FK, nonce_index, nonce_point UNIQUE, signature NULL,
         outcome NULL, UNIQUE(event_id, nonce_index))
  metadata(key PK, value)

Each operation opens its own connection, so one SqliteStorage can be shared
across threads and several processes can share one database file. Writes
run under BEGIN IMMEDIATE; the signature UPDATE is additionally guarded by
`signature IS NULL`. A ":memory:" path does not work here because every
connection would see a different database.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .errors import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .keys import schnorr_verify
from .models import (
    ANNOUNCED,
    ATTESTED,
    Announcement,
    EventRecord,
    EventSummary,
    Nonce,
    canonical_json,
    descriptor_from_dict,
)
from .storage import (
    ANNOUNCEMENT,
    ATTESTATION,
    StorageGateway,
    check_list_params,
    check_new_event,
    plan_signature_writes,
    utc_now,
)

log = logging.getLogger("dlc-oracle.storage")

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    event_id                 TEXT PRIMARY KEY,
    kind                     TEXT    NOT NULL,
    oracle_pubkey            TEXT    NOT NULL,
    descriptor_blob          TEXT    NOT NULL,
    nonce_points             TEXT    NOT NULL,
    maturity                 INTEGER NOT NULL,
    announcement_signature   TEXT    NOT NULL,
    announcement_delivery_id TEXT,
    attestation_delivery_id  TEXT,
    created_at               TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS nonces (
    event_id    TEXT    NOT NULL REFERENCES events (event_id),
    nonce_index INTEGER NOT NULL,
    nonce_point TEXT    NOT NULL UNIQUE,
    signature   TEXT,
    outcome     TEXT,
    UNIQUE (event_id, nonce_index)
);

CREATE INDEX IF NOT EXISTS nonces_event_id_index ON nonces (event_id);

CREATE TABLE IF NOT EXISTS metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_SIGNED = "EXISTS (SELECT 1 FROM nonces n WHERE n.event_id = e.event_id AND n.signature IS NOT NULL)"

_DELIVERY_COLUMNS = {
    ANNOUNCEMENT: "announcement_delivery_id",
    ATTESTATION: "attestation_delivery_id",
}


class SqliteStorage(StorageGateway):
    def __init__(self, db_path, timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False):
        conn = None
        try:
            conn = self._open()
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.IntegrityError:
            self._rollback(conn)
            raise
        except sqlite3.Error as e:
            self._rollback(conn)
            log.error(f"SQLite failure on {self.db_path}: {e}")
            raise StorageError(f"Storage failure: {e}") from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            if conn is not None:
                conn.close()

    @staticmethod
    def _rollback(conn):
        if conn is not None and conn.in_transaction:
            conn.execute("ROLLBACK")

    def _ensure_schema(self):
        try:
            conn = self._open()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialise schema in {self.db_path}: {e}") from e
        finally:
            conn.close()

    def bind_oracle_pubkey(self, pubkey: bytes) -> None:
        with self._transaction(immediate=True) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO metadata (key, value) VALUES ('oracle_pubkey', ?)",
                (pubkey.hex(),),
            )
            stored = conn.execute(
                "SELECT value FROM metadata WHERE key = 'oracle_pubkey'"
            ).fetchone()["value"]
        if stored != pubkey.hex():
            raise ConsistencyError(
                f"Database's oracle pubkey ({stored}) does not match signing key ({pubkey.hex()})"
            )

    def create_event(self, announcement: Announcement, nonces) -> None:
        nonces = list(nonces)
        check_new_event(announcement, nonces)
        ann = announcement
        try:
            with self._transaction(immediate=True) as conn:
                conn.execute(
                    "INSERT INTO events (event_id, kind, oracle_pubkey, descriptor_blob, "
                    "nonce_points, maturity, announcement_signature, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        ann.event_id,
                        ann.descriptor.kind,
                        ann.oracle_pubkey.hex(),
                        canonical_json(ann.descriptor.to_dict()).decode("utf-8"),
                        json.dumps([p.hex() for p in ann.nonce_points]),
                        ann.maturity,
                        ann.signature.hex(),
                        utc_now(),
                    ),
                )
                conn.executemany(
                    "INSERT INTO nonces (event_id, nonce_index, nonce_point) VALUES (?, ?, ?)",
                    [(n.event_id, n.index, n.nonce_point.hex()) for n in nonces],
                )
        except sqlite3.IntegrityError as e:
            if "events.event_id" in str(e):
                raise ConflictError(f"Event already exists: {ann.event_id}") from e
            if "nonces.nonce_point" in str(e):
                raise ConsistencyError(f"Event {ann.event_id} reuses a nonce point") from e
            raise ConsistencyError(f"Integrity failure storing {ann.event_id}: {e}") from e

    def _load(self, conn, event_id: str) -> Optional[EventRecord]:
        row = conn.execute("SELECT * FROM events WHERE event_id = ?", (event_id,)).fetchone()
        if row is None:
            return None
        nonce_rows = conn.execute(
            "SELECT * FROM nonces WHERE event_id = ? ORDER BY nonce_index", (event_id,)
        ).fetchall()
        nonces = [
            Nonce(
                event_id=event_id,
                index=n["nonce_index"],
                nonce_point=bytes.fromhex(n["nonce_point"]),
                signature=bytes.fromhex(n["signature"]) if n["signature"] is not None else None,
                outcome=n["outcome"],
            )
            for n in nonce_rows
        ]
        try:
            descriptor = descriptor_from_dict(json.loads(row["descriptor_blob"]))
            nonce_points = tuple(bytes.fromhex(p) for p in json.loads(row["nonce_points"]))
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise ConsistencyError(f"Event {event_id} has an unreadable announcement: {e}") from e
        announcement = Announcement(
            event_id=event_id,
            oracle_pubkey=bytes.fromhex(row["oracle_pubkey"]),
            descriptor=descriptor,
            nonce_points=nonce_points,
            maturity=row["maturity"],
            signature=bytes.fromhex(row["announcement_signature"]),
        )
        if not schnorr_verify(announcement.oracle_pubkey, announcement.digest(),
                              announcement.signature):
            raise ConsistencyError(f"Event {event_id} announcement signature does not verify")
        return EventRecord(
            announcement=announcement,
            nonces=tuple(nonces),
            created_at=row["created_at"],
            announcement_delivery_id=row["announcement_delivery_id"],
            attestation_delivery_id=row["attestation_delivery_id"],
        ).check_consistency()

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        with self._transaction() as conn:
            return self._load(conn, event_id)

    def list_events(self, status: str = None, kind: str = None,
                    limit: int = 100, offset: int = 0) -> list[EventSummary]:
        check_list_params(status, kind, limit, offset)
        clauses, params = [], []
        if kind is not None:
            clauses.append("e.kind = ?")
            params.append(kind)
        if status == ATTESTED:
            clauses.append(_SIGNED)
        elif status == ANNOUNCED:
            clauses.append(f"NOT {_SIGNED}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = (
            f"SELECT e.event_id, e.kind, e.maturity, e.created_at, {_SIGNED} AS attested, "
            "(SELECT COUNT(*) FROM nonces n WHERE n.event_id = e.event_id) AS nonce_count "
            f"FROM events e {where} ORDER BY e.rowid LIMIT ? OFFSET ?"
        )
        with self._transaction() as conn:
            rows = conn.execute(query, (*params, limit, offset)).fetchall()
        return [
            EventSummary(
                event_id=r["event_id"],
                kind=r["kind"],
                maturity=r["maturity"],
                status=ATTESTED if r["attested"] else ANNOUNCED,
                nonce_count=r["nonce_count"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def record_signatures(self, event_id: str, entries) -> EventRecord:
        entries = list(entries)
        with self._transaction(immediate=True) as conn:
            record = self._load(conn, event_id)
            if record is None:
                raise NotFoundError(f"Event not found: {event_id}")
            for entry in plan_signature_writes(record, entries):
                cur = conn.execute(
                    "UPDATE nonces SET signature = ?, outcome = ? "
                    "WHERE event_id = ? AND nonce_index = ? AND signature IS NULL",
                    (entry.signature.hex(), entry.outcome, event_id, entry.index),
                )
                if cur.rowcount != 1:
                    raise ConflictError(f"Nonce {event_id}/{entry.index} was signed concurrently")
            return self._load(conn, event_id)

    def set_delivery_id(self, event_id: str, kind: str, delivery_id: str) -> None:
        column = _DELIVERY_COLUMNS.get(kind)
        if column is None:
            raise ValidationError(f"Unknown delivery kind {kind!r}")
        with self._transaction(immediate=True) as conn:
            cur = conn.execute(
                f"UPDATE events SET {column} = ? WHERE event_id = ?", (delivery_id, event_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Event not found: {event_id}")
