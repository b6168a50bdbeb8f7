"""
Liquidation package.

Live position tracking, solvency evaluation on price ticks, nonce
sequencing and the execution policy that bounds concurrent submissions.
"""

from perpsync.liquidation.engine import LiquidationEngine, RoundResult, Verdict
from perpsync.liquidation.governor import ConcurrencyGovernor, ExecutionPolicy
from perpsync.liquidation.nonce import NonceSequencer
from perpsync.liquidation.reverts import RevertReason, classify_failure, classify_revert
from perpsync.liquidation.submitter import (
    PendingTx,
    PreparedCall,
    RpcSolvencyChecker,
    RpcSubmitter,
    TxOutcome,
    TxStatus,
)
from perpsync.liquidation.tracker import ActivePositionTracker

__all__ = [
    "LiquidationEngine",
    "RoundResult",
    "Verdict",
    "ConcurrencyGovernor",
    "ExecutionPolicy",
    "NonceSequencer",
    "RevertReason",
    "classify_failure",
    "classify_revert",
    "PendingTx",
    "PreparedCall",
    "RpcSolvencyChecker",
    "RpcSubmitter",
    "TxOutcome",
    "TxStatus",
    "ActivePositionTracker",
]
