import pytest

from dlc_oracle.keys import OracleKeyPair
from dlc_oracle.oracle import Oracle
from dlc_oracle.sqlite_storage import SqliteStorage
from dlc_oracle.storage import MemoryStorage

SECRET_HEX = "4f3edf983ac636a65a842ce7c78d9aa706d3b113bce9c46f30d7d21715b23b1d"
OTHER_SECRET_HEX = "0b" * 32
MATURITY = 1_900_000_000


@pytest.fixture
def keypair():
    return OracleKeyPair.from_hex(SECRET_HEX)


@pytest.fixture
def other_keypair():
    return OracleKeyPair.from_hex(OTHER_SECRET_HEX)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        return MemoryStorage()
    return SqliteStorage(tmp_path / "oracle.db")


@pytest.fixture
def sqlite_storage(tmp_path):
    return SqliteStorage(tmp_path / "oracle.db")


@pytest.fixture
def oracle(keypair, storage):
    return Oracle(keypair, storage)
