"""
ChainSyncController: historical backfill in bounded chunks, then live
subscriptions, dispatching every decoded event to its handler.

Phases (one way):
    IDLE -> BACKFILLING -> LIVE -> STOPPED

Backfill:
    The head block H is read once. Blocks [cursor, H] are replayed in
    chunks of ``chunk_size``; all event types of a chunk are queried
    together and must all succeed before any event of the chunk is
    dispatched. A failing query raises ChunkQueryError out of run().
    Within a chunk, events are dispatched type by type in route order,
    each type in the order the source returned them.

Live:
    One subscription per route starting at H + 1. Each subscription is
    pumped by its own task; no ordering holds across types. A transport
    error ends that pump only; it is logged and not restarted.

Known gap: blocks produced between reading H and the subscriptions
being established are not replayed if the source does not cover them.
Backfill of a wide range can take minutes, so that window is real.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from perpsync.chain.abi import ChainEvent, EventSpec
from perpsync.chain.source import EventSource
from perpsync.infra.errors import ChunkQueryError
from perpsync.monitoring.metrics import Metrics, metric_key

log = logging.getLogger("perpsync")

Handler = Callable[[ChainEvent], Awaitable[None]]

BLOCK_CHUNK_SIZE = 2_000
DELAY_BETWEEN_CHUNKS_SEC = 0.5


class SyncPhase(Enum):
    IDLE = "idle"
    BACKFILLING = "backfilling"
    LIVE = "live"
    STOPPED = "stopped"


@dataclass(frozen=True)
class EventRoute:
    spec: EventSpec
    handler: Handler


class ChainSyncController:
    def __init__(
        self,
        source: EventSource,
        routes: Sequence[EventRoute],
        chunk_size: int = BLOCK_CHUNK_SIZE,
        chunk_delay_sec: float = DELAY_BETWEEN_CHUNKS_SEC,
        start_block: Optional[int] = None,
        metrics: Optional[Metrics] = None,
        on_phase_change: Optional[Callable[[SyncPhase], None]] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self._source = source
        self._routes: List[EventRoute] = list(routes)
        self._chunk_size = chunk_size
        self._chunk_delay = chunk_delay_sec
        self._start_block = start_block
        self._metrics = metrics
        self._on_phase_change = on_phase_change
        self._phase = SyncPhase.IDLE
        self.head_at_start: Optional[int] = None

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    def _set_phase(self, phase: SyncPhase) -> None:
        self._phase = phase
        log.info(json.dumps({"event": "sync_phase", "phase": phase.value}))
        if self._on_phase_change:
            self._on_phase_change(phase)

    async def run(self, backfill: bool = True) -> None:
        """
        Sync until every live subscription has ended.

        With ``backfill=False`` only events after the current head are
        delivered (the liquidator's mode).
        """
        head = await self._source.head_block()
        self.head_at_start = head
        live_from = head + 1
        if backfill:
            start = head if self._start_block is None else self._start_block
            await self.backfill(start, head)
            live_from = max(live_from, start)
        await self.live(live_from)

    async def backfill(self, from_block: int, head: int) -> None:
        self._set_phase(SyncPhase.BACKFILLING)
        cursor = from_block
        while cursor <= head:
            to_block = min(cursor + self._chunk_size - 1, head)
            log.info(json.dumps({"event": "chunk_query", "from_block": cursor, "to_block": to_block}))
            results = await self._query_chunk(cursor, to_block)

            dispatched = 0
            for route, events in zip(self._routes, results):
                for event in events:
                    await self._dispatch(route, event)
                    dispatched += 1

            if self._metrics:
                await self._metrics.add_counter("chunks_processed_total")
                await self._metrics.set_gauge("sync_block", float(to_block))
            log.info(json.dumps({
                "event": "chunk_processed",
                "from_block": cursor,
                "to_block": to_block,
                "events": dispatched,
            }))

            cursor = to_block + 1
            if cursor <= head:
                await asyncio.sleep(self._chunk_delay)

    async def _query_chunk(self, from_block: int, to_block: int) -> List[List[ChainEvent]]:
        async def query(route: EventRoute) -> List[ChainEvent]:
            try:
                return await self._source.query(route.spec, from_block, to_block)
            except Exception as exc:
                raise ChunkQueryError(route.spec.label, from_block, to_block, exc) from exc

        tasks = [asyncio.create_task(query(route)) for route in self._routes]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException as exc:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            log.error(json.dumps({
                "event": "chunk_query_failed",
                "from_block": from_block,
                "to_block": to_block,
                "err": str(exc),
            }))
            raise

    async def live(self, from_block: int) -> None:
        self._set_phase(SyncPhase.LIVE)
        log.info(json.dumps({"event": "live_sync_start", "from_block": from_block, "subscriptions": len(self._routes)}))
        pumps = [
            asyncio.create_task(self._pump(route, from_block), name=f"sub-{route.spec.label}")
            for route in self._routes
        ]
        try:
            await asyncio.gather(*pumps)
        finally:
            for t in pumps:
                t.cancel()
            self._set_phase(SyncPhase.STOPPED)

    async def _pump(self, route: EventRoute, from_block: int) -> None:
        try:
            async for event in self._source.subscribe(route.spec, from_block):
                await self._dispatch(route, event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error(json.dumps({"event": "subscription_error", "event_type": route.spec.label, "err": str(exc)}))
            if self._metrics:
                await self._metrics.add_counter(metric_key("subscription_errors_total", type=route.spec.label))
        log.warning(json.dumps({"event": "subscription_ended", "event_type": route.spec.label}))

    async def _dispatch(self, route: EventRoute, event: ChainEvent) -> None:
        """Run one handler. A failing handler leaves that event unprocessed; the loop moves on."""
        try:
            await route.handler(event)
        except Exception as exc:
            log.error(json.dumps({"event": "handler_error", **event.coordinates, "err": str(exc)}))
            if self._metrics:
                await self._metrics.add_counter(metric_key("handler_errors_total", type=route.spec.label))
            return
        if self._metrics:
            await self._metrics.add_counter(metric_key("events_dispatched_total", type=route.spec.label))
