"""
ClearingHouse calls: the read-only solvency check and signed liquidation
transactions.

Liquidation is split in two steps so a revert is detected before a nonce
is spent:
    prepare(position_id)  -> PreparedCall   (gas estimate; reverts surface here)
    submit(call, nonce)   -> PendingTx      (sign + eth_sendRawTransaction)
``nonce=None`` asks the node for the signer's pending count instead of the
local sequencer (sequential mode).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from eth_utils import to_checksum_address

from perpsync.chain.abi import decode_result, encode_call
from perpsync.infra.errors import ContractRevert, GasLimitExceeded, RpcError
from perpsync.infra.rpc import AsyncRpc
from perpsync.ledger.models import key_bytes

RECEIPT_POLL_INTERVAL_SEC = 1.0


class TxStatus(Enum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    DROPPED = "dropped"


@dataclass
class TxOutcome:
    status: TxStatus
    tx_hash: str
    block_number: Optional[int] = None


@dataclass(frozen=True)
class PreparedCall:
    position_id: str
    data: str
    gas: int


class PendingTx:
    """Handle on a broadcast transaction; ``wait`` polls for its receipt."""

    def __init__(
        self,
        rpc: AsyncRpc,
        tx_hash: str,
        timeout: float,
        poll_interval: float = RECEIPT_POLL_INTERVAL_SEC,
    ) -> None:
        self._rpc = rpc
        self.tx_hash = tx_hash
        self._timeout = timeout
        self._poll_interval = poll_interval

    async def wait(self) -> TxOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        while loop.time() < deadline:
            receipt = await self._rpc.transaction_receipt(self.tx_hash)
            if receipt:
                block = int(receipt["blockNumber"], 16) if receipt.get("blockNumber") else None
                status = TxStatus.CONFIRMED if int(receipt.get("status", "0x1"), 16) == 1 else TxStatus.REVERTED
                return TxOutcome(status=status, tx_hash=self.tx_hash, block_number=block)
            await asyncio.sleep(self._poll_interval)
        return TxOutcome(status=TxStatus.DROPPED, tx_hash=self.tx_hash)


class SolvencyChecker(Protocol):
    async def is_solvent(self, position_id: str) -> bool: ...


class Submitter(Protocol):
    async def prepare(self, position_id: str) -> PreparedCall: ...

    async def submit(self, call: PreparedCall, nonce: Optional[int]) -> PendingTx: ...


class RpcSolvencyChecker:
    """calculatePnl(bytes32) -> (int256 pnl, bool isSolvent)"""

    def __init__(self, rpc: AsyncRpc, clearing_house_address: str) -> None:
        self._rpc = rpc
        self._address = to_checksum_address(clearing_house_address)

    async def is_solvent(self, position_id: str) -> bool:
        data = encode_call("calculatePnl(bytes32)", ["bytes32"], [key_bytes(position_id)])
        try:
            result = await self._rpc.eth_call(self._address, data)
        except RpcError as exc:
            if exc.data is None:
                raise
            raise ContractRevert(exc.data, str(exc)) from exc
        _pnl, solvent = decode_result(["int256", "bool"], result)
        return bool(solvent)


class RpcSubmitter:
    def __init__(
        self,
        rpc: AsyncRpc,
        account,
        clearing_house_address: str,
        chain_id: int,
        gas_limit: int = 500_000,
        receipt_timeout: float = 120.0,
        receipt_poll_interval: float = RECEIPT_POLL_INTERVAL_SEC,
    ) -> None:
        self._rpc = rpc
        self._account = account
        self._address = to_checksum_address(clearing_house_address)
        self._chain_id = chain_id
        self._gas_limit = gas_limit
        self._receipt_timeout = receipt_timeout
        self._receipt_poll_interval = receipt_poll_interval

    @property
    def address(self) -> str:
        return self._account.address

    async def prepare(self, position_id: str) -> PreparedCall:
        data = encode_call("liquidate(bytes32)", ["bytes32"], [key_bytes(position_id)])
        try:
            estimate = await self._rpc.estimate_gas(
                {"from": self._account.address, "to": self._address, "data": data}
            )
        except RpcError as exc:
            if exc.data is None:
                raise
            raise ContractRevert(exc.data, str(exc)) from exc
        if estimate > self._gas_limit:
            raise GasLimitExceeded(estimate, self._gas_limit)
        # 20% headroom over the estimate, capped by the configured limit
        gas = min(self._gas_limit, estimate * 6 // 5)
        return PreparedCall(position_id=position_id, data=data, gas=gas)

    async def submit(self, call: PreparedCall, nonce: Optional[int]) -> PendingTx:
        if nonce is None:
            nonce = await self._rpc.transaction_count(self._account.address, "pending")
        tx: Dict[str, Any] = {
            "to": self._address,
            "value": 0,
            "data": call.data,
            "gas": call.gas,
            "gasPrice": await self._rpc.gas_price(),
            "nonce": nonce,
            "chainId": self._chain_id,
        }
        signed = self._account.sign_transaction(tx)
        tx_hash = await self._rpc.send_raw_transaction(signed.raw_transaction)
        return PendingTx(self._rpc, tx_hash, self._receipt_timeout, self._receipt_poll_interval)

    async def transaction_count(self) -> int:
        return await self._rpc.transaction_count(self._account.address, "pending")
