"""BandMetrics builders for analysis tests."""

from pgscale.common.models import BandMetrics


def make_band(
    band_id: int,
    tps: float,
    workers: int | None = None,
    connections: int | None = None,
    latency_ms: float = 10.0,
    p95_ms: float | None = None,
    error_rate: float = 0.0,
) -> BandMetrics:
    """Build a band with derived per-unit throughput fields filled in.

    Workers default to the band id and connections to twice that.
    """
    workers = workers if workers is not None else band_id
    connections = connections if connections is not None else band_id * 2
    per_worker = tps / workers
    return BandMetrics(
        band_id=band_id,
        workers=workers,
        connections=connections,
        duration_seconds=60.0,
        total_tps=tps,
        total_transactions=int(tps * 60),
        avg_latency_ms=latency_ms,
        p50_latency_ms=latency_ms,
        p95_latency_ms=p95_ms if p95_ms is not None else latency_ms * 1.5,
        p99_latency_ms=latency_ms * 2,
        error_rate=error_rate,
        tps_per_worker=per_worker,
        tps_per_connection=tps / connections,
        worker_efficiency=(per_worker / tps * 100) if tps else 0.0,
    )


def make_series(tps_values: list[float], **kwargs) -> list[BandMetrics]:
    return [make_band(i + 1, tps, **kwargs) for i, tps in enumerate(tps_values)]
