"""
Pytest configuration and fixtures.
Adds the repo root to sys.path so tests can import perpsync without installing it.
"""

import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from perpsync.ledger.kv import MemoryStore  # noqa: E402


@pytest.fixture
def store():
    return MemoryStore()


def pid(n: int) -> str:
    """Deterministic 32-byte position/note id for tests."""
    return "0x" + n.to_bytes(32, "big").hex()


def owner(n: int) -> bytes:
    return bytes([n]) * 32


@pytest.fixture
def make_id():
    return pid


@pytest.fixture
def make_owner():
    return owner
