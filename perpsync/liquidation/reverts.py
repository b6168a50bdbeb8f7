"""
Failure classification for liquidation attempts.

Known ClearingHouse custom errors are decoded into named reasons; any
other revert payload is reported as ``unknown`` with its raw hex.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from perpsync.chain.abi import selector
from perpsync.infra.errors import ContractRevert, GasLimitExceeded, RpcError

POSITION_NOT_LIQUIDATABLE = "PositionNotLiquidatable"
POSITION_NOT_FOUND = "PositionNotFound"
NOT_POSITION_OWNER = "NotPositionOwner"
GAS_LIMIT = "gas_limit"
UNKNOWN = "unknown"
TRANSPORT = "transport"

KNOWN_ERRORS: Dict[bytes, Tuple[str, Tuple[str, ...]]] = {
    selector(f"{name}(bytes32)"): (name, ("bytes32",))
    for name in (POSITION_NOT_LIQUIDATABLE, POSITION_NOT_FOUND, NOT_POSITION_OWNER)
}


@dataclass(frozen=True)
class RevertReason:
    kind: str
    args: Tuple[Any, ...] = field(default_factory=tuple)
    raw: Optional[str] = None

    @property
    def known(self) -> bool:
        return self.kind not in (UNKNOWN, TRANSPORT, GAS_LIMIT)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reason": self.kind}
        if self.args:
            payload["args"] = ["0x" + a.hex() if isinstance(a, bytes) else a for a in self.args]
        if self.raw:
            payload["raw"] = self.raw
        return payload


def classify_revert(data: bytes) -> RevertReason:
    if len(data) >= 4 and data[:4] in KNOWN_ERRORS:
        name, types = KNOWN_ERRORS[data[:4]]
        try:
            args = decode(list(types), data[4:])
        except (DecodingError, ValueError):
            return RevertReason(kind=UNKNOWN, raw="0x" + data.hex())
        return RevertReason(kind=name, args=tuple(args))
    return RevertReason(kind=UNKNOWN, raw="0x" + data.hex())


def classify_failure(exc: BaseException) -> RevertReason:
    if isinstance(exc, GasLimitExceeded):
        return RevertReason(kind=GAS_LIMIT, args=(exc.estimate, exc.limit))
    if isinstance(exc, ContractRevert):
        return classify_revert(exc.data)
    if isinstance(exc, RpcError) and exc.data is not None:
        return classify_revert(exc.data)
    return RevertReason(kind=TRANSPORT, raw=str(exc))
