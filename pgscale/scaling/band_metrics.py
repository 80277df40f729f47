"""Band metrics calculator.

Pure transformation of a measurement-window snapshot into a BandMetrics
record. Every float passes through sanitize_float so that empty samples or
a zero-length window yield zeros instead of NaN or infinities.

Dependencies:
    - pgscale.scaling.sink: MetricsSnapshot
    - pgscale.common.models: BandMetrics, BandHealth, ConfidenceInterval
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime

from pgscale.common.models import BandHealth, BandMetrics, ConfidenceInterval
from pgscale.scaling.sink import MetricsSnapshot

MAX_RETAINED_SAMPLES = 10_000
Z_95 = 1.96
NS_PER_MS = 1_000_000.0


def sanitize_float(value: float) -> float:
    """Return value, or 0.0 when it is NaN or infinite.

    Example:
        >>> sanitize_float(float("nan"))
        0.0
        >>> sanitize_float(2.5)
        2.5
    """
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def percentile(sorted_data: Sequence[float], p: float) -> float:
    """Percentile by linear interpolation at fractional rank p*(n-1).

    Args:
        sorted_data: Values sorted ascending
        p: Fraction in [0, 1]; values outside are clamped

    Returns:
        Interpolated value, 0.0 for empty input

    Example:
        >>> percentile([10.0, 20.0, 30.0, 40.0, 50.0], 0.5)
        30.0
        >>> percentile([10.0, 20.0], 0.25)
        12.5
    """
    n = len(sorted_data)
    if n == 0:
        return 0.0
    p = min(max(p, 0.0), 1.0)
    rank = p * (n - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(sorted_data[lower])
    weight = rank - lower
    return sorted_data[lower] + (sorted_data[upper] - sorted_data[lower]) * weight


def _safe_div(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return sanitize_float(numerator / denominator)


def calculate_band_metrics(
    band_id: int,
    workers: int,
    connections: int,
    snapshot: MetricsSnapshot,
    duration_seconds: float,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    health: BandHealth | None = None,
) -> BandMetrics:
    """Convert a measurement-window snapshot into BandMetrics.

    Args:
        band_id: 1-based band identifier
        workers: Worker count of the band
        connections: Connection count of the band
        snapshot: Delta counts for the window plus captured latencies (ns)
        duration_seconds: Length of the measurement window
        start_time: Window start (defaults to now)
        end_time: Window end (defaults to now)
        health: Optional health summary from interval samples

    Returns:
        BandMetrics with every float finite

    Example:
        >>> m = calculate_band_metrics(1, 10, 10, MetricsSnapshot(committed=1000), 10.0)
        >>> m.total_tps
        100.0
    """
    duration = sanitize_float(duration_seconds)
    if duration < 0:
        duration = 0.0

    committed = max(0, snapshot.committed)
    aborted = max(0, snapshot.aborted)
    queries = max(0, snapshot.queries)
    errors = max(0, snapshot.errors)

    tps = qps = error_rate = 0.0
    if duration > 0:
        tps = committed / duration
        qps = queries / duration
        error_rate = _safe_div(errors, committed + aborted) * 100

    latencies_ms = sorted(ns / NS_PER_MS for ns in snapshot.latencies_ns)
    n = len(latencies_ms)

    avg = variance = stddev = cv = 0.0
    ci_lower = ci_upper = 0.0
    if n > 0:
        avg = math.fsum(latencies_ms) / n
        variance = math.fsum((x - avg) ** 2 for x in latencies_ms) / n
        stddev = math.sqrt(variance)
        cv = _safe_div(stddev, avg)
        if n > 1:
            margin = Z_95 * stddev / math.sqrt(n)
            ci_lower, ci_upper = avg - margin, avg + margin
        else:
            ci_lower = ci_upper = avg

    tps_per_worker = _safe_div(tps, workers)
    tps_per_connection = _safe_div(tps, connections)

    values = {
        "band_id": band_id,
        "workers": workers,
        "connections": connections,
        "duration_seconds": duration,
        "total_tps": sanitize_float(tps),
        "total_qps": sanitize_float(qps),
        "total_transactions": committed,
        "total_aborted": aborted,
        "total_queries": queries,
        "query_counts": dict(snapshot.query_counts),
        "avg_latency_ms": sanitize_float(avg),
        "p50_latency_ms": sanitize_float(percentile(latencies_ms, 0.50)),
        "p90_latency_ms": sanitize_float(percentile(latencies_ms, 0.90)),
        "p95_latency_ms": sanitize_float(percentile(latencies_ms, 0.95)),
        "p99_latency_ms": sanitize_float(percentile(latencies_ms, 0.99)),
        "min_latency_ms": sanitize_float(latencies_ms[0]) if n else 0.0,
        "max_latency_ms": sanitize_float(latencies_ms[-1]) if n else 0.0,
        "stddev_latency_ms": sanitize_float(stddev),
        "variance_latency_ms": sanitize_float(variance),
        "coefficient_of_variation": cv,
        "confidence_interval": ConfidenceInterval(
            lower=sanitize_float(ci_lower), upper=sanitize_float(ci_upper)
        ),
        "error_rate": sanitize_float(error_rate),
        "total_errors": errors,
        "error_types": dict(snapshot.error_types),
        "tps_per_worker": tps_per_worker,
        "tps_per_connection": tps_per_connection,
        "worker_efficiency": _safe_div(tps_per_worker, tps) * 100,
        "connection_utilization": _safe_div(tps_per_connection, tps) * 100,
        "pg_stats": dict(snapshot.pg_stats) if snapshot.pg_stats is not None else None,
        "latency_samples": list(snapshot.latencies_ns[:MAX_RETAINED_SAMPLES]),
        "health": health,
    }
    if start_time is not None:
        values["start_time"] = start_time
    if end_time is not None:
        values["end_time"] = end_time
    return BandMetrics(**values)
