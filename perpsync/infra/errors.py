"""
Exception types shared by the indexer and liquidator.
"""

from __future__ import annotations

from typing import Optional


class PerpSyncError(Exception):
    """Base class for all perpsync errors."""


class RpcError(PerpSyncError):
    """Transport failure or JSON-RPC error response.

    ``data`` holds the raw revert payload when the node reports one
    (eth_call / eth_estimateGas / eth_sendRawTransaction reverts).
    """

    def __init__(self, message: str, code: Optional[int] = None, data: Optional[bytes] = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class DecodeError(PerpSyncError):
    """A log or return value did not match the expected ABI layout."""


class PersistenceError(PerpSyncError):
    """A key-value write failed; the mutation that issued it did not complete."""


class ChunkQueryError(PerpSyncError):
    """One event-type query failed for a backfill chunk; the whole chunk is unapplied."""

    def __init__(self, event_type: str, from_block: int, to_block: int, cause: BaseException) -> None:
        super().__init__(f"{event_type} query failed for blocks {from_block}-{to_block}: {cause}")
        self.event_type = event_type
        self.from_block = from_block
        self.to_block = to_block


class ContractRevert(PerpSyncError):
    """A transaction or call reverted on chain with raw return data."""

    def __init__(self, data: bytes, message: str = "execution reverted") -> None:
        super().__init__(message)
        self.data = data


class GasLimitExceeded(PerpSyncError):
    """The node's gas estimate for a call is above the configured limit."""

    def __init__(self, estimate: int, limit: int) -> None:
        super().__init__(f"gas estimate {estimate} exceeds limit {limit}")
        self.estimate = estimate
        self.limit = limit
