"""
Event catalogue and ABI helpers.

Each EventSpec mirrors one event of the deployed contracts. Raw JSON-RPC
logs are decoded with eth-abi: indexed parameters come from topics[1:],
the rest from the data field.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from perpsync.infra.errors import DecodeError


@dataclass(frozen=True)
class Param:
    name: str
    type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventSpec:
    label: str   # unique routing key, e.g. "proxy.PositionOpened"
    name: str    # ABI event name
    params: Tuple[Param, ...]
    address: Optional[str] = None

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.params)})"

    @property
    def topic0(self) -> str:
        return "0x" + keccak(text=self.signature).hex()

    def bind(self, address: str) -> "EventSpec":
        return replace(self, address=to_checksum_address(address))


@dataclass
class ChainEvent:
    label: str
    block_number: int
    log_index: int
    tx_hash: str
    address: str
    args: Dict[str, Any] = field(default_factory=dict)

    @property
    def coordinates(self) -> Dict[str, Any]:
        return {"event_type": self.label, "block": self.block_number, "log_index": self.log_index}


PROXY_POSITION_OPENED = EventSpec(
    "proxy.PositionOpened", "PositionOpened", (
        Param("positionId", "bytes32", indexed=True),
        Param("ownerPubKey", "bytes32", indexed=True),
        Param("isLong", "bool"),
        Param("entryPrice", "uint256"),
        Param("margin", "uint256"),
        Param("size", "uint256"),
    ),
)

POSITION_OPENED = EventSpec(
    "clearinghouse.PositionOpened", "PositionOpened", (
        Param("positionId", "bytes32", indexed=True),
        Param("user", "address", indexed=True),
        Param("isLong", "bool"),
        Param("entryPrice", "uint256"),
        Param("margin", "uint256"),
        Param("size", "uint256"),
    ),
)

POSITION_CLOSED = EventSpec(
    "clearinghouse.PositionClosed", "PositionClosed", (
        Param("positionId", "bytes32", indexed=True),
        Param("user", "address", indexed=True),
        Param("pnl", "int256"),
    ),
)

POSITION_LIQUIDATED = EventSpec(
    "clearinghouse.PositionLiquidated", "PositionLiquidated", (
        Param("positionId", "bytes32", indexed=True),
        Param("user", "address", indexed=True),
        Param("liquidator", "address"),
        Param("fee", "uint256"),
    ),
)

NOTE_CREATED = EventSpec(
    "tokenpool.NoteCreated", "NoteCreated", (
        Param("receiverHash", "bytes32"),
        Param("amount", "uint256"),
        Param("noteNonce", "uint256"),
    ),
)

NOTE_CLAIMED = EventSpec(
    "tokenpool.NoteClaimed", "NoteClaimed", (
        Param("noteId", "bytes32"),
        Param("receiver", "address"),
        Param("amount", "uint256"),
    ),
)

PRICE_UPDATED = EventSpec(
    "oracle.PriceUpdated", "PriceUpdated", (
        Param("price", "uint256"),
        Param("timestamp", "uint256"),
    ),
)


def _normalize(type_: str, value: Any) -> Any:
    if type_ == "address":
        return to_checksum_address(value)
    return value


def decode_log(spec: EventSpec, raw: Dict[str, Any]) -> ChainEvent:
    """Decode one eth_getLogs entry against ``spec``."""
    topics: List[str] = raw.get("topics") or []
    if not topics or topics[0].lower() != spec.topic0:
        raise DecodeError(f"{spec.label}: topic0 mismatch")

    indexed = [p for p in spec.params if p.indexed]
    plain = [p for p in spec.params if not p.indexed]
    if len(topics) != len(indexed) + 1:
        raise DecodeError(f"{spec.label}: expected {len(indexed)} indexed topics, got {len(topics) - 1}")

    args: Dict[str, Any] = {}
    try:
        for param, topic in zip(indexed, topics[1:]):
            (value,) = decode([param.type], bytes.fromhex(topic[2:]))
            args[param.name] = _normalize(param.type, value)
        data = raw.get("data") or "0x"
        values = decode([p.type for p in plain], bytes.fromhex(data[2:]))
    except (DecodingError, ValueError) as exc:
        raise DecodeError(f"{spec.label}: {exc}") from exc
    for param, value in zip(plain, values):
        args[param.name] = _normalize(param.type, value)

    return ChainEvent(
        label=spec.label,
        block_number=int(raw["blockNumber"], 16),
        log_index=int(raw.get("logIndex", "0x0"), 16),
        tx_hash=raw.get("transactionHash", ""),
        address=raw.get("address", spec.address or ""),
        args=args,
    )


def selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def encode_call(signature: str, types: Sequence[str], args: Sequence[Any]) -> str:
    """0x-prefixed calldata for ``signature`` with ABI-encoded ``args``."""
    return "0x" + (selector(signature) + encode(list(types), list(args))).hex()


def decode_result(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    try:
        return decode(list(types), data)
    except (DecodingError, ValueError) as exc:
        raise DecodeError(f"cannot decode result as {list(types)}: {exc}") from exc
