"""
Indexer entry point: backfill then live-sync chain events into the ledgers.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Optional

from eth_utils import to_checksum_address

from perpsync.chain.abi import decode_result, encode_call
from perpsync.chain.handlers import IndexerHandlers
from perpsync.chain.source import RpcEventSource
from perpsync.chain.sync import ChainSyncController, SyncPhase
from perpsync.config.config import IndexerSettings
from perpsync.infra.logging_cfg import build_logger
from perpsync.infra.rpc import AsyncRpc
from perpsync.ledger.kv import JsonFileStore
from perpsync.ledger.notes import NoteLedger
from perpsync.ledger.positions import PositionLedger
from perpsync.monitoring.metrics import HealthChecker, Metrics, start_metrics_server

log = build_logger("perpsync")


async def resolve_clearing_house(rpc: AsyncRpc, privacy_proxy_address: str) -> str:
    """Read PrivacyProxy.clearingHouse()."""
    result = await rpc.eth_call(to_checksum_address(privacy_proxy_address), encode_call("clearingHouse()", [], []))
    (address,) = decode_result(["address"], result)
    return to_checksum_address(address)


async def main(start_block: Optional[int] = None) -> None:
    cfg = IndexerSettings.load()
    if cfg.log_file:
        build_logger("perpsync", file_path=cfg.log_file)
    if start_block is None:
        start_block = cfg.start_block

    rpc = AsyncRpc(cfg.rpc_url, timeout=cfg.http_timeout)
    metrics = Metrics()
    health = HealthChecker()
    srv = None
    try:
        # connectivity failures here are fatal
        head = await rpc.block_number()
        clearing_house = cfg.clearing_house_address or await resolve_clearing_house(rpc, cfg.privacy_proxy_address)
        log.info(json.dumps({"event": "startup", "process": "indexer", "head": head, "clearing_house": clearing_house}))

        store = JsonFileStore(cfg.db_path)
        handlers = IndexerHandlers(
            PositionLedger(store),
            NoteLedger(store),
            privacy_proxy_address=cfg.privacy_proxy_address,
            token_address=cfg.token_address,
        )

        def on_phase(phase: SyncPhase) -> None:
            health.set_component_health("sync", phase is not SyncPhase.STOPPED, phase.value)
            health.set_ready(phase is SyncPhase.LIVE)

        controller = ChainSyncController(
            RpcEventSource(rpc, poll_interval=cfg.poll_interval),
            handlers.routes(clearing_house, cfg.token_pool_address),
            chunk_size=cfg.chunk_size,
            chunk_delay_sec=cfg.chunk_delay_ms / 1000.0,
            start_block=start_block,
            metrics=metrics,
            on_phase_change=on_phase,
        )
        if cfg.metrics_port:
            srv = await start_metrics_server(metrics, cfg.metrics_port, health)

        run_task = asyncio.create_task(controller.run(backfill=True))
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, run_task.cancel)
            except NotImplementedError:
                pass

        try:
            await run_task
            log.error(json.dumps({"event": "indexer_exited", "reason": "all subscriptions ended"}))
        except asyncio.CancelledError:
            log.info("Shutdown signal received, cleaning up...")
    finally:
        if srv is not None:
            srv.close()
            await srv.wait_closed()
        await rpc.close()
        log.info("Shutdown complete")


def cli() -> None:
    parser = argparse.ArgumentParser(description="Index perp DEX positions and notes from chain events")
    parser.add_argument("--start-block", type=int, default=None, help="first block to backfill (default: head)")
    args = parser.parse_args()
    try:
        asyncio.run(main(start_block=args.start_block))
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        log.critical(json.dumps({"event": "indexer_fatal", "err": str(exc)}))
        sys.exit(1)


if __name__ == "__main__":
    cli()
