"""
PositionLedger: open/historical positions per owner with reverse indices.

Collections (one tree each):
    open_positions        owner key (32 bytes) -> JSON list[Position]
    historical_positions  owner key (32 bytes) -> JSON list[HistoricalPosition], most recent first
    pos_id_to_owner       position id ("0x..") -> owner key; present iff the position is open
    positions_by_id       position id ("0x..") -> tagged PositionRecord; never deleted

Each method is synchronous and performs its writes back to back, so on a
single event loop no other mutation interleaves with it. The writes are
still independent: a crash between them can leave a position partially
migrated.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import List, Optional, Union

from perpsync.ledger.kv import KeyValueStore
from perpsync.ledger.models import (
    HistoricalPosition,
    Page,
    Position,
    PositionRecord,
    PositionStatus,
    hex32,
    key_bytes,
)

log = logging.getLogger("perpsync")

DEFAULT_PAGE_SIZE = 20


class PositionLedger:
    def __init__(self, store: KeyValueStore) -> None:
        self.open_positions = store.tree("open_positions")
        self.historical_positions = store.tree("historical_positions")
        self.position_id_to_owner = store.tree("pos_id_to_owner")
        self.positions_by_id = store.tree("positions_by_id")

    def add_open_position(self, owner: Union[bytes, str], position: Position) -> None:
        """Insert into the owner's open set; a repeated id leaves the list unchanged."""
        owner_key = key_bytes(owner)
        position_id = hex32(position.position_id)
        position = replace(position, position_id=position_id)

        positions = self.get_open_positions(owner_key)
        if not any(p.position_id == position_id for p in positions):
            positions.append(position)
        self.open_positions.put(owner_key, _dump([p.to_dict() for p in positions]))
        self.position_id_to_owner.put(position_id.encode(), owner_key)
        self.positions_by_id.put(position_id.encode(), _dump(PositionRecord.open(position).to_dict()))
        log.debug(json.dumps({"event": "position_opened", "position_id": position_id, "owner": "0x" + owner_key.hex()}))

    def move_to_historical(
        self,
        position_id: Union[bytes, str],
        status: PositionStatus,
        final_pnl: str,
        owner_address: str,
    ) -> bool:
        """
        Move an open position to the owner's historical list.

        Returns False (and writes nothing) when the id has no reverse-index
        entry, which means it was never opened here or was already moved.
        """
        pid = hex32(position_id)
        owner_key = self.position_id_to_owner.get(pid.encode())
        if owner_key is None:
            return False

        open_positions = self.get_open_positions(owner_key)
        index = next((i for i, p in enumerate(open_positions) if p.position_id == pid), None)
        if index is None:
            return False

        moved = open_positions.pop(index)
        self.open_positions.put(owner_key, _dump([p.to_dict() for p in open_positions]))

        historical = HistoricalPosition(
            position=moved,
            status=status,
            final_pnl=final_pnl,
            owner_address=owner_address,
        )
        history = self._all_historical(owner_key)
        history.insert(0, historical)
        self.historical_positions.put(owner_key, _dump([h.to_dict() for h in history]))

        self.position_id_to_owner.delete(pid.encode())
        self.positions_by_id.put(pid.encode(), _dump(PositionRecord.historical(historical).to_dict()))
        log.debug(json.dumps({"event": "position_moved_to_historical", "position_id": pid, "status": status.value}))
        return True

    def get_open_positions(self, owner: Union[bytes, str]) -> List[Position]:
        data = self.open_positions.get(key_bytes(owner))
        if data is None:
            return []
        return [Position.from_dict(d) for d in json.loads(data)]

    def get_historical_positions(
        self,
        owner: Union[bytes, str],
        cursor: Optional[int] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[HistoricalPosition]:
        """
        Page through the owner's history, most recent first.

        ``cursor`` is an absolute offset into that list. ``next_cursor`` is
        the offset of the following page as a string, set only when more
        items remain.
        """
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        history = self._all_historical(key_bytes(owner))
        start = cursor or 0
        if start >= len(history):
            return Page(items=[], has_more=False, next_cursor=None)

        end = min(start + page_size, len(history))
        has_more = end < len(history)
        return Page(
            items=history[start:end],
            has_more=has_more,
            next_cursor=str(end) if has_more else None,
        )

    def get_position_by_id(self, position_id: Union[bytes, str]) -> Optional[PositionRecord]:
        data = self.positions_by_id.get(hex32(position_id).encode())
        if data is None:
            return None
        return PositionRecord.from_dict(json.loads(data))

    def owner_of(self, position_id: Union[bytes, str]) -> Optional[bytes]:
        """Owner key of an open position, None once it is historical."""
        return self.position_id_to_owner.get(hex32(position_id).encode())

    def _all_historical(self, owner_key: bytes) -> List[HistoricalPosition]:
        data = self.historical_positions.get(owner_key)
        if data is None:
            return []
        return [HistoricalPosition.from_dict(d) for d in json.loads(data)]


def _dump(obj) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode()
