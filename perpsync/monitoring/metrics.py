"""
Lightweight Prometheus-style metrics and HTTP server with health endpoints.

- /metrics - Prometheus text exposition
- /health  - Liveness (all components healthy)
- /ready   - Readiness (indexer live / liquidator subscribed)
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse


@dataclass
class HealthStatus:
    healthy: bool = True
    ready: bool = False
    last_heartbeat_ms: int = 0
    components: Dict[str, bool] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)


class HealthChecker:
    """Tracks component health and overall readiness."""

    def __init__(self) -> None:
        self._components: Dict[str, bool] = {}
        self._details: Dict[str, Any] = {}
        self._ready = False
        self._last_heartbeat = int(time.time() * 1000)

    def set_component_health(self, name: str, healthy: bool, detail: Optional[str] = None) -> None:
        self._components[name] = healthy
        if detail:
            self._details[name] = detail
        self._last_heartbeat = int(time.time() * 1000)

    def set_ready(self, ready: bool) -> None:
        self._ready = ready
        self._last_heartbeat = int(time.time() * 1000)

    def is_healthy(self) -> bool:
        if not self._components:
            return True
        return all(self._components.values())

    def is_ready(self) -> bool:
        return self._ready and self.is_healthy()

    def get_status(self) -> HealthStatus:
        return HealthStatus(
            healthy=self.is_healthy(),
            ready=self.is_ready(),
            last_heartbeat_ms=self._last_heartbeat,
            components=dict(self._components),
            details=dict(self._details),
        )

    def to_dict(self) -> Dict[str, Any]:
        status = self.get_status()
        return {
            "healthy": status.healthy,
            "ready": status.ready,
            "last_heartbeat_ms": status.last_heartbeat_ms,
            "components": status.components,
            "details": status.details,
        }


class Metrics:
    def __init__(self) -> None:
        self._gauges: Dict[str, float] = {}
        self._counters: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def set_gauge(self, key: str, value: float) -> None:
        async with self._lock:
            self._gauges[key] = value

    async def add_counter(self, key: str, delta: float = 1.0) -> None:
        async with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + delta

    async def counter(self, key: str) -> float:
        async with self._lock:
            return self._counters.get(key, 0.0)

    async def render(self) -> str:
        async with self._lock:
            lines = []
            for k, v in self._gauges.items():
                lines.append(f"# TYPE {k} gauge")
                lines.append(f"{k} {v}")
            for k, v in self._counters.items():
                lines.append(f"# TYPE {k} counter")
                lines.append(f"{k} {v}")
            return "\n".join(lines) + "\n"


def metric_key(name: str, **labels: str) -> str:
    """Prometheus series name with labels, e.g. events_total{type="x"}."""
    if not labels:
        return name
    body = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{name}{{{body}}}"


async def start_metrics_server(
    metrics: Metrics,
    port: int,
    health_checker: Optional[HealthChecker] = None,
    host: str = "0.0.0.0",
) -> asyncio.AbstractServer:
    async def respond(writer: asyncio.StreamWriter, status: bytes, content_type: bytes, body: str) -> None:
        writer.write(
            b"HTTP/1.1 " + status + b"\r\n"
            b"Content-Type: " + content_type + b"\r\n"
            b"Connection: close\r\n\r\n"
            + body.encode()
        )
        await writer.drain()
        writer.close()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        req = await reader.read(2048)
        path_raw = b"/"
        first_line = req.split(b"\r\n", 1)[0]
        parts = first_line.split(b" ")
        if len(parts) >= 2:
            path_raw = parts[1]
        path = urlparse(path_raw.decode("utf-8", errors="ignore")).path

        if path == "/health":
            healthy = health_checker.is_healthy() if health_checker else True
            body = json.dumps(health_checker.to_dict() if health_checker else {"healthy": True})
            status = b"200 OK" if healthy else b"503 Service Unavailable"
            await respond(writer, status, b"application/json", body)
            return

        if path == "/ready":
            ready = health_checker.is_ready() if health_checker else True
            status = b"200 OK" if ready else b"503 Service Unavailable"
            await respond(writer, status, b"application/json", json.dumps({"ready": ready}))
            return

        await respond(writer, b"200 OK", b"text/plain; version=0.0.4", await metrics.render())

    return await asyncio.start_server(handle, host, port)
