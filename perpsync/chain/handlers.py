"""
Indexer event handlers: translate decoded chain events into ledger mutations.

Idempotence under duplicate or reordered delivery:
- opened: no-op when the id is already in the owner's open set
- closed / liquidated: no-op when the id has no reverse-index entry
- note created: appends unconditionally (duplicates are kept)
- note claimed: no-op when no bucket holds the note id
"""

from __future__ import annotations

import json
import logging
from typing import List

from eth_utils import keccak, to_canonical_address, to_checksum_address

from perpsync.chain.abi import (
    NOTE_CLAIMED,
    NOTE_CREATED,
    POSITION_CLOSED,
    POSITION_LIQUIDATED,
    POSITION_OPENED,
    PROXY_POSITION_OPENED,
    ChainEvent,
)
from perpsync.chain.sync import EventRoute
from perpsync.ledger.models import Position, PositionStatus, UnspentNote, hex32
from perpsync.ledger.notes import NoteLedger
from perpsync.ledger.owner import owner_key_from_address
from perpsync.ledger.positions import PositionLedger

log = logging.getLogger("perpsync")

LIQUIDATED_SETTLEMENT = "Liquidated"


def note_id_for(token_address: str, note_nonce: int) -> str:
    """keccak256(token address || nonce as 32-byte big endian)."""
    return "0x" + keccak(to_canonical_address(token_address) + note_nonce.to_bytes(32, "big")).hex()


class IndexerHandlers:
    def __init__(
        self,
        positions: PositionLedger,
        notes: NoteLedger,
        privacy_proxy_address: str,
        token_address: str,
    ) -> None:
        self.positions = positions
        self.notes = notes
        self.privacy_proxy_address = to_checksum_address(privacy_proxy_address)
        self.token_address = to_checksum_address(token_address)

    def routes(self, clearing_house_address: str, token_pool_address: str) -> List[EventRoute]:
        return [
            EventRoute(PROXY_POSITION_OPENED.bind(self.privacy_proxy_address), self.on_private_position_opened),
            EventRoute(POSITION_OPENED.bind(clearing_house_address), self.on_public_position_opened),
            EventRoute(POSITION_CLOSED.bind(clearing_house_address), self.on_position_closed),
            EventRoute(POSITION_LIQUIDATED.bind(clearing_house_address), self.on_position_liquidated),
            EventRoute(NOTE_CREATED.bind(token_pool_address), self.on_note_created),
            EventRoute(NOTE_CLAIMED.bind(token_pool_address), self.on_note_claimed),
        ]

    async def on_private_position_opened(self, event: ChainEvent) -> None:
        position = _position_from(event)
        log.info(json.dumps({"event": "private_position_opened", "position_id": position.position_id}))
        self.positions.add_open_position(event.args["ownerPubKey"], position)

    async def on_public_position_opened(self, event: ChainEvent) -> None:
        user = event.args["user"]
        # the proxy's own positions arrive through the private event
        if user == self.privacy_proxy_address:
            return
        position = _position_from(event)
        log.info(json.dumps({"event": "public_position_opened", "position_id": position.position_id, "user": user}))
        self.positions.add_open_position(owner_key_from_address(user), position)

    async def on_position_closed(self, event: ChainEvent) -> None:
        position_id = hex32(event.args["positionId"])
        moved = self.positions.move_to_historical(
            position_id, PositionStatus.CLOSED, str(event.args["pnl"]), event.args["user"]
        )
        log.info(json.dumps({"event": "position_closed", "position_id": position_id, "moved": moved}))

    async def on_position_liquidated(self, event: ChainEvent) -> None:
        position_id = hex32(event.args["positionId"])
        moved = self.positions.move_to_historical(
            position_id, PositionStatus.LIQUIDATED, LIQUIDATED_SETTLEMENT, event.args["user"]
        )
        log.info(json.dumps({"event": "position_liquidated", "position_id": position_id, "moved": moved}))

    async def on_note_created(self, event: ChainEvent) -> None:
        nonce = int(event.args["noteNonce"])
        note = UnspentNote(
            note_id=note_id_for(self.token_address, nonce),
            note_nonce=nonce,
            receiver_hash=hex32(event.args["receiverHash"]),
            value=str(event.args["amount"]),
        )
        log.info(json.dumps({"event": "note_created", "note_id": note.note_id, "note_nonce": nonce}))
        self.notes.add_unspent_note(note)

    async def on_note_claimed(self, event: ChainEvent) -> None:
        note_id = hex32(event.args["noteId"])
        removed = self.notes.remove_unspent_note(note_id)
        log.info(json.dumps({"event": "note_claimed", "note_id": note_id, "removed": removed}))


def _position_from(event: ChainEvent) -> Position:
    args = event.args
    return Position(
        position_id=hex32(args["positionId"]),
        is_long=bool(args["isLong"]),
        entry_price=str(args["entryPrice"]),
        margin=str(args["margin"]),
        size=str(args["size"]),
    )
