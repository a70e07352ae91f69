"""
Consumer Metrics Collection.

Counts what the queue consumer did with each delivery and how long
handlers took. Observability only: nothing in the pipeline reads these
numbers to make decisions.
"""

import statistics
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from docrepair.state import MessageState


@dataclass
class LatencyStats:
    """Handler latencies in milliseconds, summarized on demand."""

    samples: list[float] = field(default_factory=list, repr=False)

    def add(self, latency_ms: float) -> None:
        self.samples.append(latency_ms)

    @property
    def count(self) -> int:
        return len(self.samples)

    def _p95(self) -> float:
        # quantiles() needs enough samples to be meaningful
        if len(self.samples) < 20:
            return max(self.samples)
        return statistics.quantiles(self.samples, n=20)[-1]

    def to_dict(self) -> dict[str, Any]:
        if not self.samples:
            return {"count": 0, "total_ms": 0, "min_ms": 0, "max_ms": 0, "mean_ms": 0, "median_ms": 0, "p95_ms": 0}
        return {
            "count": self.count,
            "total_ms": round(sum(self.samples), 2),
            "min_ms": round(min(self.samples), 2),
            "max_ms": round(max(self.samples), 2),
            "mean_ms": round(statistics.fmean(self.samples), 2),
            "median_ms": round(statistics.median(self.samples), 2),
            "p95_ms": round(self._p95(), 2),
        }


class ConsumerMetrics:
    """
    Counters for the queue consumer loop.

    Usage:
        metrics = ConsumerMetrics()
        with metrics.time_handler():
            await handler(job)
        metrics.record_outcome(MessageState.ACKNOWLEDGED)
    """

    def __init__(self) -> None:
        self.started_at = datetime.now(timezone.utc)
        self.polls = 0
        self.poll_errors = 0
        self.received = 0
        self._by_state: dict[MessageState, int] = {state: 0 for state in MessageState}
        self.handler_latency = LatencyStats()

    def record_poll(self, received: int) -> None:
        self.polls += 1
        self.received += received

    def record_poll_error(self) -> None:
        self.poll_errors += 1

    def record_outcome(self, state: MessageState) -> None:
        self._by_state[state] += 1

    def count(self, state: MessageState) -> int:
        return self._by_state[state]

    def time_handler(self) -> "HandlerTimer":
        return HandlerTimer(self.handler_latency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "polls": self.polls,
            "poll_errors": self.poll_errors,
            "received": self.received,
            "outcomes": {state.value: n for state, n in self._by_state.items()},
            "handler_latency": self.handler_latency.to_dict(),
        }


class HandlerTimer:
    """Context manager that records elapsed time into a LatencyStats."""

    def __init__(self, stats: LatencyStats):
        self.stats = stats
        self._start_time: float = 0

    def __enter__(self):
        self._start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stats.add((time.perf_counter() - self._start_time) * 1000)
        return False
