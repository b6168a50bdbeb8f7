"""
Ledger data models and their JSON layout.

Numeric amounts (prices, margin, size, pnl, note value) are carried as
decimal strings so uint256/int256 values never lose precision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")


def hex32(value: Union[bytes, str]) -> str:
    """Canonical 0x-prefixed lowercase hex for a 32-byte identifier."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value[2:] if value.startswith(("0x", "0X")) else value
        raw = bytes.fromhex(text)
    if len(raw) != 32:
        raise ValueError(f"expected 32 bytes, got {len(raw)}")
    return "0x" + raw.hex()


def key_bytes(value: Union[bytes, str]) -> bytes:
    """32-byte identifier as raw bytes (owner keys, receiver hashes)."""
    return bytes.fromhex(hex32(value)[2:])


class PositionStatus(Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    LIQUIDATED = "Liquidated"


@dataclass
class Position:
    position_id: str
    is_long: bool
    entry_price: str
    margin: str
    size: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "is_long": self.is_long,
            "entry_price": self.entry_price,
            "margin": self.margin,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Position":
        return cls(
            position_id=d["position_id"],
            is_long=bool(d["is_long"]),
            entry_price=str(d["entry_price"]),
            margin=str(d["margin"]),
            size=str(d["size"]),
        )


@dataclass
class HistoricalPosition:
    """A closed or liquidated position plus its settlement outcome."""
    position: Position
    status: PositionStatus
    final_pnl: str
    owner_address: str

    def to_dict(self) -> Dict[str, Any]:
        # position fields are flattened next to the settlement fields
        return {
            **self.position.to_dict(),
            "status": self.status.value,
            "final_pnl": self.final_pnl,
            "owner_address": self.owner_address,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HistoricalPosition":
        return cls(
            position=Position.from_dict(d),
            status=PositionStatus(d["status"]),
            final_pnl=str(d["final_pnl"]),
            owner_address=d.get("owner_address", ""),
        )


@dataclass
class PositionRecord:
    """Global id-keyed record, tagged with the lifecycle stage it was last written in."""
    stage: str  # "Open" or "Historical"
    data: Union[Position, HistoricalPosition]

    OPEN = "Open"
    HISTORICAL = "Historical"

    @property
    def is_open(self) -> bool:
        return self.stage == self.OPEN

    @classmethod
    def open(cls, position: Position) -> "PositionRecord":
        return cls(stage=cls.OPEN, data=position)

    @classmethod
    def historical(cls, historical: HistoricalPosition) -> "PositionRecord":
        return cls(stage=cls.HISTORICAL, data=historical)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.stage, "data": self.data.to_dict()}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PositionRecord":
        stage = d["status"]
        if stage == cls.OPEN:
            return cls.open(Position.from_dict(d["data"]))
        if stage == cls.HISTORICAL:
            return cls.historical(HistoricalPosition.from_dict(d["data"]))
        raise ValueError(f"unknown position record stage: {stage}")


@dataclass
class UnspentNote:
    note_id: str
    note_nonce: int
    receiver_hash: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "note_id": self.note_id,
            "note_nonce": self.note_nonce,
            "receiver_hash": self.receiver_hash,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UnspentNote":
        return cls(
            note_id=d["note_id"],
            note_nonce=int(d["note_nonce"]),
            receiver_hash=d["receiver_hash"],
            value=str(d["value"]),
        )


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "has_more": self.has_more,
            "next_cursor": self.next_cursor,
        }
