import os
import sys

import pytest

# Make the src/ layout importable without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from codeflow.security import vault_crypto
from codeflow.security.account_store import AccountStore
from codeflow.security.kv_store import MemoryStore

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"  # Base32 of b"12345678901234567890"
PASSWORD = "correct horse battery"


class FakeClock:
    """Settable clock returning Unix seconds."""

    def __init__(self, now=1700000000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def store(kv):
    return AccountStore(kv)


@pytest.fixture(scope="session")
def salt():
    return bytes(range(16))


@pytest.fixture(scope="session")
def key(salt):
    return vault_crypto.derive_key(PASSWORD, salt)
