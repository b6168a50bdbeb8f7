"""
Liquidator entry point: track open positions from live events and
liquidate insolvent ones on every oracle price update.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import List

from perpsync.chain.source import RpcEventSource
from perpsync.chain.sync import ChainSyncController, SyncPhase
from perpsync.config.config import LiquidatorSettings
from perpsync.infra.logging_cfg import build_logger
from perpsync.infra.rpc import AsyncRpc
from perpsync.liquidation.engine import LiquidationEngine
from perpsync.liquidation.governor import ConcurrencyGovernor, ExecutionPolicy
from perpsync.liquidation.nonce import NonceSequencer
from perpsync.liquidation.submitter import RpcSolvencyChecker, RpcSubmitter
from perpsync.liquidation.tracker import ActivePositionTracker
from perpsync.monitoring.metrics import HealthChecker, Metrics, start_metrics_server

log = build_logger("perpsync")


async def main(force_sequential: bool = False) -> None:
    cfg = LiquidatorSettings.load(force_sequential=force_sequential)
    if cfg.log_file:
        build_logger("perpsync", file_path=cfg.log_file)
    policy = ExecutionPolicy.from_settings(cfg)

    rpc = AsyncRpc(cfg.rpc_url, timeout=cfg.http_timeout)
    metrics = Metrics()
    health = HealthChecker()
    srv = None
    tasks: List[asyncio.Task] = []
    try:
        account = cfg.resolve_signer()
        chain_id = await rpc.chain_id()
        submitter = RpcSubmitter(
            rpc,
            account,
            cfg.clearing_house_address,
            chain_id,
            gas_limit=cfg.gas_limit,
            receipt_timeout=cfg.receipt_timeout,
        )
        initial_nonce = await submitter.transaction_count()
        sequencer = NonceSequencer(initial_nonce, metrics=metrics) if policy.uses_local_nonces else None

        log.info(json.dumps({
            "event": "startup",
            "process": "liquidator",
            "account": account.address,
            "chain_id": chain_id,
            "mode": policy.mode,
            "max_in_flight": policy.max_in_flight,
            "initial_nonce": initial_nonce,
        }))

        tracker = ActivePositionTracker()
        engine = LiquidationEngine(
            tracker,
            RpcSolvencyChecker(rpc, cfg.clearing_house_address),
            submitter,
            ConcurrencyGovernor(policy),
            sequencer=sequencer,
            metrics=metrics,
        )
        source = RpcEventSource(rpc, poll_interval=cfg.poll_interval)
        controller = ChainSyncController(
            source,
            tracker.routes(cfg.clearing_house_address) + engine.routes(cfg.oracle_address),
            metrics=metrics,
            on_phase_change=lambda phase: health.set_ready(phase is SyncPhase.LIVE),
        )
        if cfg.metrics_port:
            srv = await start_metrics_server(metrics, cfg.metrics_port, health)

        # live only: positions opened before startup are not replayed
        tasks.append(asyncio.create_task(controller.run(backfill=False), name="sync"))
        if sequencer is not None:
            tasks.append(asyncio.create_task(
                sequencer.run_reconciler(submitter.transaction_count, cfg.nonce_resync_sec),
                name="nonce-resync",
            ))

        loop = asyncio.get_running_loop()

        def stop_all() -> None:
            for t in tasks:
                t.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_all)
            except NotImplementedError:
                pass

        try:
            await tasks[0]
            log.error(json.dumps({"event": "liquidator_exited", "reason": "all subscriptions ended"}))
        except asyncio.CancelledError:
            log.info("Shutdown signal received, cleaning up...")
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if srv is not None:
            srv.close()
            await srv.wait_closed()
        await rpc.close()
        log.info("Shutdown complete")


def cli() -> None:
    parser = argparse.ArgumentParser(description="Liquidate insolvent perp positions on price updates")
    parser.add_argument(
        "--local",
        action="store_true",
        help="sequential mode: one liquidation at a time, node-assigned nonces",
    )
    args = parser.parse_args()
    try:
        asyncio.run(main(force_sequential=args.local))
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        log.critical(json.dumps({"event": "liquidator_fatal", "err": str(exc)}))
        sys.exit(1)


if __name__ == "__main__":
    cli()
