"""
Execution policy and the concurrency gate for solvency-check/submit work.

The policy is chosen once at startup and never changes while running:
- sequential: one position at a time, each liquidation awaited to
  confirmation, nonces assigned by the node (no local sequencer)
- concurrent: up to K positions in flight, nonces from NonceSequencer
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

MAX_CONCURRENT_RPC_CALLS = 5

SEQUENTIAL = "sequential"
CONCURRENT = "concurrent"


@dataclass(frozen=True)
class ExecutionPolicy:
    mode: str
    max_in_flight: int

    @classmethod
    def sequential(cls) -> "ExecutionPolicy":
        return cls(mode=SEQUENTIAL, max_in_flight=1)

    @classmethod
    def concurrent(cls, max_in_flight: int = MAX_CONCURRENT_RPC_CALLS) -> "ExecutionPolicy":
        if max_in_flight <= 0:
            raise ValueError("max_in_flight must be > 0")
        return cls(mode=CONCURRENT, max_in_flight=max_in_flight)

    @classmethod
    def from_settings(cls, settings) -> "ExecutionPolicy":
        if settings.execution_mode == SEQUENTIAL:
            return cls.sequential()
        return cls.concurrent(settings.max_in_flight)

    @property
    def is_sequential(self) -> bool:
        return self.mode == SEQUENTIAL

    @property
    def uses_local_nonces(self) -> bool:
        return not self.is_sequential


class ConcurrencyGovernor:
    """Counting admission gate sized by the policy; tracks the in-flight peak."""

    def __init__(self, policy: ExecutionPolicy) -> None:
        self.policy = policy
        self._sem = asyncio.Semaphore(policy.max_in_flight)
        self.in_flight = 0
        self.peak_in_flight = 0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._sem:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                yield
            finally:
                self.in_flight -= 1
