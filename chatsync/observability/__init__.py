"""
Observability module.

Provides structured logging, correlation ID tracking, request middleware
and fire-and-forget performance events.
"""

from chatsync.observability.logger import configure_logging, get_logger
from chatsync.observability.performance import PerformanceEvent, PerformanceRecorder

__all__ = ["PerformanceEvent", "PerformanceRecorder", "configure_logging", "get_logger"]
