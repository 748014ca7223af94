import logging
from pathlib import Path

import pytest

from conftest import SECRET_HEX
from dlc_oracle.config import (
    Settings,
    build_oracle,
    build_publisher,
    load_keypair,
    load_settings,
)
from dlc_oracle.publisher import LogPublisher, RelayPublisher


def test_defaults():
    settings = load_settings({})
    assert settings == Settings()
    assert settings.port == 9104
    assert settings.relays == ()


def test_environment_overrides(tmp_path):
    settings = load_settings({
        "DLC_ORACLE_KEY": SECRET_HEX,
        "DLC_ORACLE_DB": str(tmp_path / "o.db"),
        "DLC_ORACLE_RELAYS": " http://a/ , ,http://b/",
        "DLC_ORACLE_PORT": "8080",
        "DLC_ORACLE_LOG_LEVEL": "debug",
    })
    assert settings.db_path == tmp_path / "o.db"
    assert settings.relays == ("http://a/", "http://b/")
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"


def test_bad_port():
    with pytest.raises(ValueError):
        load_settings({"DLC_ORACLE_PORT": "http"})


def test_key_from_environment_wins(tmp_path, keypair):
    settings = Settings(key_hex=SECRET_HEX, key_path=tmp_path / "unused.hex")
    assert load_keypair(settings) == keypair
    assert not (tmp_path / "unused.hex").exists()


def test_key_file_created_once(tmp_path):
    settings = Settings(key_path=tmp_path / "keys" / "sk.hex")
    first = load_keypair(settings)
    assert load_keypair(settings) == first


def test_build_publisher():
    assert isinstance(build_publisher(Settings()), LogPublisher)
    publisher = build_publisher(Settings(relays=("http://relay/",)))
    assert isinstance(publisher, RelayPublisher)
    publisher.close()


def test_build_oracle(tmp_path, keypair, caplog):
    settings = Settings(key_hex=SECRET_HEX, db_path=tmp_path / "data" / "oracle.db")
    oracle = build_oracle(settings)
    assert oracle.public_key == keypair.public_key
    assert Path(settings.db_path).exists()
    with caplog.at_level(logging.INFO, logger="dlc-oracle"):
        oracle.create_enum_event("e", ["a"], 1_900_000_000)
    assert "Announced: e" in caplog.text
