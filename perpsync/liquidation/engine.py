"""
LiquidationEngine: on every price tick, check each tracked position's
solvency and liquidate the insolvent ones.

One loop serves both execution policies; the ConcurrencyGovernor bounds
how many positions are evaluated at once (1 when sequential, K when
concurrent). In concurrent mode a nonce is taken from the NonceSequencer
right before the signed transaction is sent; in sequential mode the node
assigns it.

Every failure is non-fatal: the position stays tracked and is evaluated
again on the next tick. Only a Liquidated/Closed event removes it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from perpsync.chain.abi import PRICE_UPDATED, ChainEvent
from perpsync.chain.sync import EventRoute
from perpsync.infra.context import TraceContext
from perpsync.liquidation.governor import ConcurrencyGovernor
from perpsync.liquidation.nonce import NonceSequencer
from perpsync.liquidation.reverts import classify_failure
from perpsync.liquidation.submitter import SolvencyChecker, Submitter, TxStatus
from perpsync.liquidation.tracker import ActivePositionTracker
from perpsync.monitoring.metrics import Metrics, metric_key

log = logging.getLogger("perpsync")


class Verdict(Enum):
    SOLVENT = "solvent"
    CHECK_FAILED = "check_failed"
    LIQUIDATED = "liquidated"
    REJECTED = "rejected"      # reverted in simulation or failed to send
    REVERTED = "reverted"      # mined with status 0
    DROPPED = "dropped"        # no receipt before the timeout
    WAIT_FAILED = "wait_failed"  # sent, but polling for the receipt failed
    FAILED = "failed"          # unexpected error while evaluating


@dataclass
class RoundResult:
    trace_id: str
    checked: int = 0
    verdicts: dict = field(default_factory=dict)

    def ids_with(self, verdict: Verdict) -> List[str]:
        return [pid for pid, v in self.verdicts.items() if v is verdict]


class LiquidationEngine:
    def __init__(
        self,
        tracker: ActivePositionTracker,
        checker: SolvencyChecker,
        submitter: Submitter,
        governor: ConcurrencyGovernor,
        sequencer: Optional[NonceSequencer] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        if governor.policy.uses_local_nonces and sequencer is None:
            raise ValueError("concurrent execution requires a NonceSequencer")
        self.tracker = tracker
        self.checker = checker
        self.submitter = submitter
        self.governor = governor
        self.sequencer = sequencer
        self._metrics = metrics

    def routes(self, oracle_address: str) -> List[EventRoute]:
        return [EventRoute(PRICE_UPDATED.bind(oracle_address), self.on_price_update)]

    async def on_price_update(self, event: ChainEvent) -> None:
        ctx = TraceContext("price_tick")
        ctx.info("price_updated", price=str(event.args.get("price")), block=event.block_number)
        await self.run_round(ctx)

    async def run_round(self, ctx: Optional[TraceContext] = None) -> RoundResult:
        ctx = ctx or TraceContext("price_tick")
        position_ids = await self.tracker.snapshot()
        result = RoundResult(trace_id=ctx.trace_id, checked=len(position_ids))
        if not position_ids:
            return result

        ctx.info("round_start", positions=len(position_ids), mode=self.governor.policy.mode)
        results = await asyncio.gather(
            *(self._evaluate(pid, ctx) for pid in position_ids),
            return_exceptions=True,
        )
        verdicts = []
        for pid, outcome in zip(position_ids, results):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                ctx.error("position_evaluation_failed", position_id=pid, err=repr(outcome))
                outcome = Verdict.FAILED
            verdicts.append(outcome)
        result.verdicts = dict(zip(position_ids, verdicts))
        ctx.info(
            "round_done",
            liquidated=len(result.ids_with(Verdict.LIQUIDATED)),
            insolvent=sum(1 for v in verdicts if v is not Verdict.SOLVENT and v is not Verdict.CHECK_FAILED),
        )
        return result

    async def _evaluate(self, position_id: str, parent: TraceContext) -> Verdict:
        ctx = parent.child("position", position_id=position_id)
        async with self.governor.slot():
            try:
                solvent = await self.checker.is_solvent(position_id)
            except Exception as exc:
                ctx.warning("solvency_check_failed", err=str(exc))
                return Verdict.CHECK_FAILED
            if solvent:
                ctx.debug("position_solvent")
                return Verdict.SOLVENT
            ctx.info("position_insolvent")
            verdict = await self._liquidate(position_id, ctx)
        await self._count(verdict)
        return verdict

    async def _liquidate(self, position_id: str, ctx: TraceContext) -> Verdict:
        try:
            call = await self.submitter.prepare(position_id)
        except Exception as exc:
            reason = classify_failure(exc)
            ctx.warning("liquidation_rejected", stage="prepare", **reason.to_dict())
            return Verdict.REJECTED

        nonce = await self.sequencer.allocate() if self.governor.policy.uses_local_nonces else None
        try:
            pending = await self.submitter.submit(call, nonce)
        except Exception as exc:
            reason = classify_failure(exc)
            ctx.warning("liquidation_rejected", stage="submit", nonce=nonce, **reason.to_dict())
            return Verdict.REJECTED

        ctx.info("liquidation_sent", nonce=nonce, tx_hash=pending.tx_hash)
        try:
            outcome = await pending.wait()
        except Exception as exc:
            reason = classify_failure(exc)
            ctx.warning("liquidation_wait_failed", tx_hash=pending.tx_hash, nonce=nonce, **reason.to_dict())
            return Verdict.WAIT_FAILED
        if outcome.status is TxStatus.CONFIRMED:
            ctx.info("liquidation_confirmed", tx_hash=outcome.tx_hash, block=outcome.block_number)
            return Verdict.LIQUIDATED
        if outcome.status is TxStatus.REVERTED:
            ctx.warning("liquidation_reverted", tx_hash=outcome.tx_hash, block=outcome.block_number)
            return Verdict.REVERTED
        ctx.warning("liquidation_dropped", tx_hash=outcome.tx_hash, nonce=nonce)
        return Verdict.DROPPED

    async def _count(self, verdict: Verdict) -> None:
        if self._metrics:
            await self._metrics.add_counter(metric_key("liquidations_total", outcome=verdict.value))
