"""
EventSource: bounded historical queries and live subscriptions per event type.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, List, Protocol

from perpsync.chain.abi import ChainEvent, EventSpec, decode_log
from perpsync.infra.rpc import AsyncRpc

log = logging.getLogger("perpsync")


class EventSource(Protocol):
    async def head_block(self) -> int: ...

    async def query(self, spec: EventSpec, from_block: int, to_block: int) -> List[ChainEvent]: ...

    def subscribe(self, spec: EventSpec, from_block: int) -> AsyncIterator[ChainEvent]: ...


class RpcEventSource:
    """
    EventSource over plain JSON-RPC.

    ``subscribe`` is a lazy, unbounded iterator that polls eth_getLogs for
    each new range of blocks. It is not restartable: the first transport
    or decoding error propagates out of the iterator and ends it.
    """

    def __init__(self, rpc: AsyncRpc, poll_interval: float = 2.0) -> None:
        self._rpc = rpc
        self._poll_interval = poll_interval

    async def head_block(self) -> int:
        return await self._rpc.block_number()

    async def query(self, spec: EventSpec, from_block: int, to_block: int) -> List[ChainEvent]:
        if spec.address is None:
            raise ValueError(f"{spec.label} is not bound to a contract address")
        raw_logs = await self._rpc.get_logs(spec.address, [spec.topic0], from_block, to_block)
        return [decode_log(spec, raw) for raw in raw_logs if not raw.get("removed")]

    async def subscribe(self, spec: EventSpec, from_block: int) -> AsyncIterator[ChainEvent]:
        cursor = from_block
        while True:
            head = await self.head_block()
            if head >= cursor:
                events = await self.query(spec, cursor, head)
                log.debug(json.dumps({
                    "event": "subscription_poll",
                    "event_type": spec.label,
                    "from_block": cursor,
                    "to_block": head,
                    "count": len(events),
                }))
                cursor = head + 1
                for event in events:
                    yield event
            await asyncio.sleep(self._poll_interval)
