# dlc_oracle/config.py
"""
DLC Oracle configuration, read from the environment.

  DLC_ORACLE_KEY        hex oracle secret (takes precedence over the key file)
  DLC_ORACLE_KEY_PATH   hex key file, created with mode 0600 if missing
  DLC_ORACLE_DB         SQLite database path
  DLC_ORACLE_RELAYS     comma-separated relay URLs (empty: log only)
  DLC_ORACLE_HOST       bind address for the API server
  DLC_ORACLE_PORT       API server port
  DLC_ORACLE_LOG_LEVEL  logging level name
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .keys import OracleKeyPair, load_or_create_key
from .oracle import Oracle
from .publisher import LogPublisher, RelayPublisher
from .sqlite_storage import SqliteStorage

KEYS_DIR = Path(__file__).parent / "keys"
DATA_DIR = Path(__file__).parent / "data"


@dataclass(frozen=True)
class Settings:
    key_hex: str = ""
    key_path: Path = KEYS_DIR / "oracle_sk.hex"
    db_path: Path = DATA_DIR / "oracle.db"
    relays: tuple = ()
    host: str = "0.0.0.0"
    port: int = 9104
    log_level: str = "INFO"
    relay_timeout: float = 5.0


def load_settings(env=None) -> Settings:
    env = os.environ if env is None else env
    relays = tuple(r.strip() for r in env.get("DLC_ORACLE_RELAYS", "").split(",") if r.strip())
    port = env.get("DLC_ORACLE_PORT", "9104")
    try:
        port = int(port)
    except ValueError:
        raise ValueError(f"DLC_ORACLE_PORT must be an integer, got {port!r}") from None
    return Settings(
        key_hex=env.get("DLC_ORACLE_KEY", ""),
        key_path=Path(env.get("DLC_ORACLE_KEY_PATH", str(KEYS_DIR / "oracle_sk.hex"))),
        db_path=Path(env.get("DLC_ORACLE_DB", str(DATA_DIR / "oracle.db"))),
        relays=relays,
        host=env.get("DLC_ORACLE_HOST", "0.0.0.0"),
        port=port,
        log_level=env.get("DLC_ORACLE_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


def load_keypair(settings: Settings) -> OracleKeyPair:
    if settings.key_hex:
        return OracleKeyPair.from_hex(settings.key_hex)
    return load_or_create_key(settings.key_path)


def build_publisher(settings: Settings):
    if settings.relays:
        return RelayPublisher(settings.relays, timeout=settings.relay_timeout)
    return LogPublisher()


def build_oracle(settings: Settings) -> Oracle:
    keypair = load_keypair(settings)
    storage = SqliteStorage(settings.db_path)
    return Oracle(keypair, storage, publisher=build_publisher(settings))
