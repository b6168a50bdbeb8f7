"""
Minimal async JSON-RPC client for EVM nodes.
"""

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional

import httpx

from perpsync.infra.errors import RpcError


def _revert_data(error: Dict[str, Any]) -> Optional[bytes]:
    # geth puts the payload under "data"; hardhat/anvil sometimes nest it one level deeper
    data = error.get("data")
    if isinstance(data, dict):
        data = data.get("data")
    if isinstance(data, str) and data.startswith("0x"):
        try:
            return bytes.fromhex(data[2:])
        except ValueError:
            return None
    return None


def to_hex(value: int) -> str:
    return hex(value)


def from_hex(value: str) -> int:
    return int(value, 16)


class AsyncRpc:
    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        # A shared client passed in is not closed by close(); otherwise we own it.
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(http2=True, timeout=timeout)
            self._owns_client = True
        self._ids = itertools.count(1)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def block_number(self) -> int:
        return from_hex(await self.call("eth_blockNumber", []))

    async def chain_id(self) -> int:
        return from_hex(await self.call("eth_chainId", []))

    async def gas_price(self) -> int:
        return from_hex(await self.call("eth_gasPrice", []))

    async def get_logs(
        self,
        address: str,
        topics: List[Optional[str]],
        from_block: int,
        to_block: int,
    ) -> List[Dict[str, Any]]:
        flt = {
            "address": address,
            "topics": topics,
            "fromBlock": to_hex(from_block),
            "toBlock": to_hex(to_block),
        }
        result = await self.call("eth_getLogs", [flt])
        return list(result or [])

    async def eth_call(self, to: str, data: str, block: str = "latest") -> bytes:
        result = await self.call("eth_call", [{"to": to, "data": data}, block])
        return bytes.fromhex(result[2:])

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return from_hex(await self.call("eth_estimateGas", [tx]))

    async def transaction_count(self, address: str, block: str = "latest") -> int:
        return from_hex(await self.call("eth_getTransactionCount", [address, block]))

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        return await self.call("eth_sendRawTransaction", ["0x" + raw_tx.hex()])

    async def transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self.client.post(self.url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            raise RpcError(f"{method} transport error: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"{method} returned non-JSON body") from exc

        if not isinstance(body, dict):
            raise RpcError(f"{method} returned unexpected payload")
        error = body.get("error")
        if error:
            raise RpcError(
                f"{method}: {error.get('message', 'unknown error')}",
                code=error.get("code"),
                data=_revert_data(error),
            )
        return body.get("result")
