"""
Observability Module.

Structured logging and consumer metrics.
"""

from docrepair.observability.logging import (
    LogContext,
    configure_logging,
    get_logger,
)
from docrepair.observability.metrics import (
    ConsumerMetrics,
    LatencyStats,
)

__all__ = [
    "LogContext",
    "configure_logging",
    "get_logger",
    "ConsumerMetrics",
    "LatencyStats",
]
