"""
Transaction nonce sequencer for a single signer.

``allocate`` hands out the current value and increments it under an
asyncio.Lock; the critical section contains no await on the network, so
concurrent callers receive distinct, contiguous, increasing values in
allocation order.

A background reconciler periodically compares the counter with the
signer's transaction count on chain and overwrites it when they differ.
That recovers from drift (dropped or externally sent transactions) but
does not resend anything that was lost.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

from perpsync.monitoring.metrics import Metrics

log = logging.getLogger("perpsync")

NONCE_RESYNC_INTERVAL_SEC = 60.0


class NonceSequencer:
    def __init__(self, initial: int, metrics: Optional[Metrics] = None) -> None:
        if initial < 0:
            raise ValueError("initial nonce must be >= 0")
        self._next = initial
        self._lock = asyncio.Lock()
        self._metrics = metrics

    async def allocate(self) -> int:
        async with self._lock:
            nonce = self._next
            self._next += 1
            return nonce

    async def peek(self) -> int:
        async with self._lock:
            return self._next

    async def reconcile(self, on_chain: int) -> bool:
        """Adopt the on-chain count if it differs. Returns True when corrected."""
        async with self._lock:
            local = self._next
            if local == on_chain:
                return False
            self._next = on_chain
        log.warning(json.dumps({"event": "nonce_resync", "local": local, "on_chain": on_chain}))
        if self._metrics:
            await self._metrics.add_counter("nonce_corrections_total")
        return True

    async def run_reconciler(
        self,
        fetch_count: Callable[[], Awaitable[int]],
        interval_sec: float = NONCE_RESYNC_INTERVAL_SEC,
    ) -> None:
        """Reconcile forever; a failed fetch skips that round."""
        while True:
            await asyncio.sleep(interval_sec)
            try:
                on_chain = await fetch_count()
            except Exception as exc:
                log.warning(json.dumps({"event": "nonce_resync_fetch_failed", "err": str(exc)}))
                continue
            await self.reconcile(on_chain)
