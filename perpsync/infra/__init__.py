"""
Infrastructure package.

This package contains infrastructure components including logging
configuration, trace contexts, the JSON-RPC transport and shared errors.
"""

from perpsync.infra.context import TraceContext
from perpsync.infra.errors import (
    ChunkQueryError,
    ContractRevert,
    DecodeError,
    PerpSyncError,
    PersistenceError,
    RpcError,
)
from perpsync.infra.logging_cfg import build_logger
from perpsync.infra.rpc import AsyncRpc

__all__ = [
    "AsyncRpc",
    "build_logger",
    "TraceContext",
    "PerpSyncError",
    "RpcError",
    "DecodeError",
    "PersistenceError",
    "ChunkQueryError",
    "ContractRevert",
]
