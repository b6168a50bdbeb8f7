"""
Ledger package.

Derived state mirrored from chain events: positions, unspent notes and
per-owner metadata, persisted in a key-value store.
"""

from perpsync.ledger.kv import JsonFileStore, KeyValueStore, MemoryStore
from perpsync.ledger.metadata import MetadataStore
from perpsync.ledger.models import (
    HistoricalPosition,
    Page,
    Position,
    PositionRecord,
    PositionStatus,
    UnspentNote,
)
from perpsync.ledger.notes import NoteLedger
from perpsync.ledger.owner import owner_key_from_address, owner_key_from_signature
from perpsync.ledger.positions import PositionLedger

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "MetadataStore",
    "HistoricalPosition",
    "Page",
    "Position",
    "PositionRecord",
    "PositionStatus",
    "UnspentNote",
    "NoteLedger",
    "PositionLedger",
    "owner_key_from_address",
    "owner_key_from_signature",
]
