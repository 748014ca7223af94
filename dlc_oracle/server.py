# dlc_oracle/server.py
"""
DLC Oracle API Server

Endpoints:
  GET  /health                                - Liveness
  GET  /dlc/oracle/pubkey                     - Oracle public key
  GET  /dlc/oracle/status                     - Event counts
  GET  /dlc/oracle/events                     - List events (status, kind, limit, offset)
  GET  /dlc/oracle/announcements/{eid}        - Single announcement
  GET  /dlc/oracle/attestations/{eid}         - Single attestation (425 until attested)
  POST /dlc/oracle/events/enum                - Announce an enum event
  POST /dlc/oracle/events/numeric             - Announce a digit decomposition event
  POST /dlc/oracle/attestations/enum          - Attest an enum outcome
  POST /dlc/oracle/attestations/numeric       - Attest a numeric outcome

Usage:
  python3 -m dlc_oracle.server [port]
"""

import logging
import sys
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .attestor import attested_value
from .config import build_oracle, configure_logging, load_settings
from .errors import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    OracleError,
    StorageError,
    ValidationError,
)
from .models import ANNOUNCED, ATTESTED, NUMERIC
from .oracle import Oracle
from .storage import MAX_PAGE_SIZE

log = logging.getLogger("dlc-oracle.server")

ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StorageError, 503),
    (ConsistencyError, 500),
]


class CreateEnumEvent(BaseModel):
    event_id: str
    outcomes: list[str]
    maturity: int


class CreateNumericEvent(BaseModel):
    event_id: str
    maturity: int
    base: int = 10
    digit_count: Optional[int] = None
    max_value: Optional[int] = None
    is_signed: bool = False
    unit: str = ""
    precision: int = 0


class SignEnumEvent(BaseModel):
    event_id: str
    outcome: str


class SignNumericEvent(BaseModel):
    event_id: str
    value: int


def _status_code(exc: OracleError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 500


def _count(oracle: Oracle, status: str) -> int:
    total, offset = 0, 0
    while True:
        page = oracle.list_events(status=status, limit=MAX_PAGE_SIZE, offset=offset)
        total += len(page)
        if len(page) < MAX_PAGE_SIZE:
            return total
        offset += MAX_PAGE_SIZE


def create_app(oracle: Oracle, now=None) -> FastAPI:
    now = now or (lambda: int(time.time()))
    app = FastAPI(title="DLC Oracle", version="v1")

    @app.exception_handler(OracleError)
    async def oracle_error(request: Request, exc: OracleError):
        code = _status_code(exc)
        if isinstance(exc, ConsistencyError):
            log.error(f"Consistency failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    def _check_maturity(maturity: int):
        if maturity < now():
            raise ValidationError("Event maturity epoch must be in the future")

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "dlc-oracle", "version": "v1"}

    @app.get("/dlc/oracle/pubkey")
    def get_pubkey():
        return {
            "oracle_pubkey": oracle.public_key.hex(),
            "key_format": "x-only",
            "key_bytes": 32,
            "curve": "secp256k1",
            "signature_scheme": "bip340",
        }

    @app.get("/dlc/oracle/status")
    def get_status():
        announced = _count(oracle, ANNOUNCED)
        attested = _count(oracle, ATTESTED)
        return {
            "oracle_pubkey": oracle.public_key.hex(),
            "events": announced + attested,
            "attested": attested,
            "pending": announced,
            "version": "v1",
        }

    @app.get("/dlc/oracle/events")
    def list_events(status: Optional[str] = None, kind: Optional[str] = None,
                    limit: int = 100, offset: int = 0):
        events = oracle.list_events(status=status, kind=kind, limit=limit, offset=offset)
        return {"count": len(events), "events": [e.to_dict() for e in events]}

    @app.get("/dlc/oracle/announcements/{eid}")
    def get_announcement(eid: str):
        record = oracle.get_event(eid)
        body = record.announcement.to_dict()
        body["status"] = record.status
        body["created_at"] = record.created_at
        body["delivery_id"] = record.announcement_delivery_id
        return body

    @app.get("/dlc/oracle/attestations/{eid}")
    def get_attestation(eid: str):
        record = oracle.get_event(eid)
        att = record.attestation()
        if att is None:
            raise HTTPException(
                status_code=425,
                detail=f"Event announced but not yet attested. Maturity: {record.announcement.maturity}",
            )
        body = att.to_dict()
        if record.descriptor.kind == NUMERIC:
            body["value"] = attested_value(record)
        body["delivery_id"] = record.attestation_delivery_id
        return body

    @app.post("/dlc/oracle/events/enum")
    def create_enum_event(body: CreateEnumEvent):
        _check_maturity(body.maturity)
        ann = oracle.create_enum_event(body.event_id, body.outcomes, body.maturity)
        return ann.to_dict()

    @app.post("/dlc/oracle/events/numeric")
    def create_numeric_event(body: CreateNumericEvent):
        _check_maturity(body.maturity)
        ann = oracle.create_numeric_event(
            body.event_id,
            body.maturity,
            base=body.base,
            digit_count=body.digit_count,
            max_value=body.max_value,
            is_signed=body.is_signed,
            unit=body.unit,
            precision=body.precision,
        )
        return ann.to_dict()

    @app.post("/dlc/oracle/attestations/enum")
    def attest_enum(body: SignEnumEvent):
        return oracle.attest_enum(body.event_id, body.outcome).to_dict()

    @app.post("/dlc/oracle/attestations/numeric")
    def attest_numeric(body: SignNumericEvent):
        att = oracle.attest_numeric(body.event_id, body.value).to_dict()
        att["value"] = body.value
        return att

    return app


if __name__ == "__main__":
    settings = load_settings()
    configure_logging(settings.log_level)
    port = int(sys.argv[1]) if len(sys.argv) > 1 else settings.port
    oracle = build_oracle(settings)
    log.info(f"Oracle pubkey: {oracle.public_key.hex()}")
    uvicorn.run(create_app(oracle), host=settings.host, port=port)
