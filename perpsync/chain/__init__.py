"""
Chain package.

Event catalogue and decoding, the event source, the sync controller and
the indexer's event handlers.
"""

from perpsync.chain.abi import ChainEvent, EventSpec, Param, decode_log
from perpsync.chain.handlers import IndexerHandlers, note_id_for
from perpsync.chain.source import EventSource, RpcEventSource
from perpsync.chain.sync import ChainSyncController, EventRoute, SyncPhase

__all__ = [
    "ChainEvent",
    "EventSpec",
    "Param",
    "decode_log",
    "IndexerHandlers",
    "note_id_for",
    "EventSource",
    "RpcEventSource",
    "ChainSyncController",
    "EventRoute",
    "SyncPhase",
]
