"""
Fire-and-forget performance events.

Records latency events (e.g. inference response time) without ever
blocking or failing the caller. Each event is handed to the configured
sinks on a background task; sink errors are logged and dropped.

Dependencies: asyncio, logging (stdlib)
System role: Latency observability for the response path
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from chatsync.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceEvent:
    """A single latency measurement."""

    name: str
    duration_ms: float
    attributes: dict[str, Any] = field(default_factory=dict)


PerformanceSink = Callable[[PerformanceEvent], Awaitable[None]]


class LoggingSink:
    """Default sink: writes events to the log, warning above a threshold."""

    def __init__(self, slow_threshold_ms: float = 5000.0) -> None:
        self.slow_threshold_ms = slow_threshold_ms

    async def __call__(self, event: PerformanceEvent) -> None:
        level = logging.WARNING if event.duration_ms >= self.slow_threshold_ms else logging.INFO
        logger.log(
            level,
            f"perf {event.name} {event.duration_ms:.1f}ms",
            extra={"perf_event": event.name, "duration_ms": event.duration_ms, **event.attributes},
        )


class PerformanceRecorder:
    """
    Dispatches performance events to sinks on background tasks.

    record() returns immediately. Pending dispatch tasks are tracked so
    they are not garbage collected mid-flight and can be drained on
    shutdown or in tests.
    """

    def __init__(self, sinks: list[PerformanceSink] | None = None, enabled: bool = True) -> None:
        """
        Initialize recorder.

        Args:
            sinks: Async callables receiving each event (defaults to LoggingSink)
            enabled: When False, record() is a no-op
        """
        self.sinks: list[PerformanceSink] = sinks if sinks is not None else [LoggingSink()]
        self.enabled = enabled
        self._pending: set[asyncio.Task] = set()

    def record(self, name: str, duration_ms: float, **attributes: Any) -> None:
        """
        Emit an event without awaiting delivery.

        Args:
            name: Event name (e.g. "response_latency")
            duration_ms: Measured duration in milliseconds
            **attributes: Extra event attributes
        """
        if not self.enabled or not self.sinks:
            return
        event = PerformanceEvent(name=name, duration_ms=duration_ms, attributes=attributes)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"{__name__}:record - no running loop, dropping {name}")
            return
        task = loop.create_task(self._dispatch(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch(self, event: PerformanceEvent) -> None:
        for sink in self.sinks:
            try:
                await sink(event)
            except Exception as e:
                log_exception_with_context(
                    logger, "Performance sink failed", e, perf_event=event.name
                )

    async def drain(self) -> None:
        """Wait for in-flight dispatches (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
