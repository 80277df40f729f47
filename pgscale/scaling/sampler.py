"""Periodic interval sampling during a band's measurement window.

Dependencies:
    - pgscale.scaling.sink: MetricsSink
    - pgscale.scaling.band_metrics: percentile, sanitize_float
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass

from pgscale.common.logging import get_logger
from pgscale.common.models import BandHealth
from pgscale.scaling.band_metrics import NS_PER_MS, percentile, sanitize_float
from pgscale.scaling.sink import MetricsSink, MetricsSnapshot

logger = get_logger("scaling.sampler")

HEALTHY_ERROR_RATIO = 0.05
HEALTHY_P95_MS = 100.0


@dataclass(frozen=True)
class IntervalSample:
    """Throughput and latency over one sampler interval."""

    elapsed_seconds: float
    interval_seconds: float
    transactions: int
    tps: float
    qps: float
    error_count: int
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float

    @property
    def error_ratio(self) -> float:
        return self.error_count / max(1, self.transactions)

    @property
    def is_healthy(self) -> bool:
        """Below 5% errors and p95 under 100 ms. Empty intervals are unhealthy."""
        return (
            self.transactions > 0
            and self.error_ratio < HEALTHY_ERROR_RATIO
            and self.p95_latency_ms < HEALTHY_P95_MS
        )


class IntervalSampler:
    """Collects an IntervalSample every `interval` seconds until stopped."""

    def __init__(
        self,
        sink: MetricsSink,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sink = sink
        self.interval = interval
        self._clock = clock
        self.samples: list[IntervalSample] = []
        self._started = 0.0
        self._last_time = 0.0
        self._last_counts = MetricsSnapshot()

    def start(self) -> None:
        """Mark the beginning of the window."""
        self._started = self._last_time = self._clock()
        self._last_counts = self.sink.counts()

    def sample(self) -> IntervalSample:
        """Take one interval sample relative to the previous one."""
        now = self._clock()
        current = self.sink.snapshot(since=self._last_counts.latency_index)

        elapsed = now - self._last_time
        delta = current.delta(self._last_counts)
        latencies_ms = sorted(ns / NS_PER_MS for ns in delta.latencies_ns)
        transactions = delta.committed + delta.aborted

        sample = IntervalSample(
            elapsed_seconds=sanitize_float(now - self._started),
            interval_seconds=sanitize_float(elapsed),
            transactions=transactions,
            tps=sanitize_float(delta.committed / elapsed) if elapsed > 0 else 0.0,
            qps=sanitize_float(delta.queries / elapsed) if elapsed > 0 else 0.0,
            error_count=delta.errors,
            p50_latency_ms=percentile(latencies_ms, 0.50),
            p95_latency_ms=percentile(latencies_ms, 0.95),
            p99_latency_ms=percentile(latencies_ms, 0.99),
        )

        self.samples.append(sample)
        self._last_time = now
        self._last_counts = current
        return sample

    async def run(self, stop_event: asyncio.Event) -> list[IntervalSample]:
        """Sample periodically until stop_event is set."""
        self.start()
        while not stop_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
                break
            sample = self.sample()
            logger.debug(
                "Interval sample",
                {
                    "elapsed_seconds": round(sample.elapsed_seconds, 3),
                    "tps": round(sample.tps, 2),
                    "errors": sample.error_count,
                    "p95_ms": round(sample.p95_latency_ms, 3),
                },
            )
        return self.samples


def calculate_band_health(samples: list[IntervalSample]) -> BandHealth | None:
    """Summarize interval samples into a BandHealth.

    A sample is healthy when it has transactions with an error ratio below
    5% and p95 latency below 100 ms.

    Returns:
        BandHealth, or None when there are no samples

    Example:
        >>> calculate_band_health([]) is None
        True
    """
    if not samples:
        return None

    healthy = [s for s in samples if s.is_healthy]
    ratios = [s.error_ratio for s in samples]
    return BandHealth(
        sample_count=len(samples),
        health_score=len(healthy) / len(samples),
        avg_error_rate=sum(ratios) / len(ratios),
        max_error_rate=max(ratios),
        healthy_seconds=sum(s.interval_seconds for s in healthy),
        unhealthy_seconds=sum(s.interval_seconds for s in samples if not s.is_healthy),
    )
