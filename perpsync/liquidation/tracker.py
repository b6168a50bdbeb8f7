"""
ActivePositionTracker: in-memory map of currently open positions
(position id -> owner address), fed only by live ClearingHouse events.

There is no historical catch-up: positions opened before the process
started are unknown until they emit another event. The map is complete
only when the process has watched every open since the market started.

Critical section: the lock is held only to copy the key set or to apply a
single insert/remove, never across a network call.

The three ClearingHouse events arrive on separate subscriptions, so a
close can be delivered before the open it ends. Removed ids are kept in a
bounded tombstone set and a later open for one of them is ignored.
Position ids are never reused, so a tombstoned id cannot legitimately
reopen.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from perpsync.chain.abi import POSITION_CLOSED, POSITION_LIQUIDATED, POSITION_OPENED, ChainEvent
from perpsync.chain.sync import EventRoute
from perpsync.ledger.models import hex32

log = logging.getLogger("perpsync")

TOMBSTONE_CAPACITY = 10_000


class ActivePositionTracker:
    def __init__(self, tombstone_capacity: int = TOMBSTONE_CAPACITY) -> None:
        self._positions: Dict[str, str] = {}
        self._removed: "OrderedDict[str, str]" = OrderedDict()
        self._tombstone_capacity = tombstone_capacity
        self._lock = asyncio.Lock()

    async def add(self, position_id: str, owner: str) -> bool:
        pid = hex32(position_id)
        async with self._lock:
            reason = self._removed.get(pid)
            if reason is None:
                self._positions[pid] = owner
        if reason is not None:
            log.info(json.dumps({"event": "position_add_ignored", "position_id": pid, "removed_as": reason}))
            return False
        log.info(json.dumps({"event": "position_tracked", "position_id": pid, "owner": owner}))
        return True

    async def remove(self, position_id: str, reason: str = "closed") -> bool:
        pid = hex32(position_id)
        async with self._lock:
            removed = self._positions.pop(pid, None) is not None
            self._removed[pid] = reason
            self._removed.move_to_end(pid)
            while len(self._removed) > self._tombstone_capacity:
                self._removed.popitem(last=False)
        if removed:
            log.info(json.dumps({"event": "position_untracked", "position_id": pid, "reason": reason}))
        return removed

    async def snapshot(self) -> List[str]:
        async with self._lock:
            return list(self._positions.keys())

    async def owner_of(self, position_id: str) -> Optional[str]:
        async with self._lock:
            return self._positions.get(hex32(position_id))

    async def size(self) -> int:
        async with self._lock:
            return len(self._positions)

    def routes(self, clearing_house_address: str) -> List[EventRoute]:
        return [
            EventRoute(POSITION_OPENED.bind(clearing_house_address), self.on_position_opened),
            EventRoute(POSITION_CLOSED.bind(clearing_house_address), self.on_position_closed),
            EventRoute(POSITION_LIQUIDATED.bind(clearing_house_address), self.on_position_liquidated),
        ]

    async def on_position_opened(self, event: ChainEvent) -> None:
        await self.add(event.args["positionId"], event.args["user"])

    async def on_position_closed(self, event: ChainEvent) -> None:
        await self.remove(event.args["positionId"], reason="closed")

    async def on_position_liquidated(self, event: ChainEvent) -> None:
        await self.remove(event.args["positionId"], reason="liquidated")
