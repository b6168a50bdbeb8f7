"""
Structured logging context with trace IDs.

Each liquidation round (one price tick) gets a trace_id; each position
evaluated in that round gets a child context, so an operator can replay
every decision from the JSON log.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Optional


class TraceContext:
    """Correlation context for structured decision logging."""

    def __init__(
        self,
        scope: str,
        trace_id: Optional[str] = None,
        parent_trace_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize context.

        Args:
            scope: what this context covers (e.g. 'price_tick', 'position')
            trace_id: unique ID for this logical operation (auto-generated if None)
            parent_trace_id: parent trace ID for nested operations
            logger: logger instance (defaults to the 'perpsync' logger)
        """
        self.scope = scope
        self.trace_id = trace_id or str(uuid.uuid4())
        self.parent_trace_id = parent_trace_id
        self.start_time = time.time()
        self.logger = logger or logging.getLogger("perpsync")
        self.tags: dict[str, Any] = {}

    def set_tag(self, key: str, value: Any) -> None:
        """Add a tag to be included in all logs from this context."""
        self.tags[key] = value

    def log(self, event: str, level: str = "info", **data: Any) -> None:
        payload = {
            "ts": time.time(),
            "trace_id": self.trace_id,
            **({"parent_trace_id": self.parent_trace_id} if self.parent_trace_id else {}),
            "scope": self.scope,
            "event": event,
            "elapsed_ms": self.elapsed_ms(),
            **self.tags,
            **data
        }
        log_func = getattr(self.logger, level, self.logger.info)
        log_func(json.dumps(payload, default=str))

    def debug(self, event: str, **data: Any) -> None:
        self.log(event, level="debug", **data)

    def info(self, event: str, **data: Any) -> None:
        self.log(event, level="info", **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log(event, level="warning", **data)

    def error(self, event: str, **data: Any) -> None:
        self.log(event, level="error", **data)

    def child(self, scope: str, **tags: Any) -> TraceContext:
        """
        Create a child context for a sub-operation.

        The child gets a fresh trace_id and points back to this context
        through parent_trace_id.
        """
        child = TraceContext(
            scope=scope,
            parent_trace_id=self.trace_id,
            logger=self.logger
        )
        for key, value in tags.items():
            child.set_tag(key, value)
        return child

    def elapsed_ms(self) -> float:
        return (time.time() - self.start_time) * 1000.0
