"""M/M/c queueing estimates per band.

Each band is modelled with servers = connections and arrival rate = TPS.
The per-server service rate is estimated once, from a low-utilization
reference band (the band with the fewest connections, earliest on ties),
so that a band's utilization is not derived from its own throughput:

    mu  = 1000 / avg_latency_ms(reference)         (fallback: TPS / connections)
    rho = TPS / (connections * mu)
    Wq  = (1 / mu) * rho / (1 - rho) * 1000 ms     (rho >= 1: SATURATED_WAIT_MS)

Bottleneck classification, first match wins:
    queue       rho > 0.8
    io          observed latency > 2x predicted wait
    contention  error rate > 1%
    cpu         otherwise
"""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.analysis_models import QueueingAnalysis, QueueingEstimate
from pgscale.analyst.statistics import finite, safe_div
from pgscale.common.models import BandMetrics

HIGH_UTILIZATION = 0.8
IO_LATENCY_FACTOR = 2.0
CONTENTION_ERROR_RATE = 1.0
SATURATED_WAIT_MS = 10_000.0


def _reference_band(bands: Sequence[BandMetrics]) -> BandMetrics:
    return min(bands, key=lambda b: (b.connections, b.band_id))


def estimate_service_rate(bands: Sequence[BandMetrics]) -> tuple[int, float]:
    """Per-server service rate (transactions/sec) from the reference band.

    Returns:
        (reference band_id, service rate); the rate is 0.0 when neither the
        reference latency nor any band's throughput is usable
    """
    reference = _reference_band(bands)
    if reference.avg_latency_ms > 0:
        return reference.band_id, finite(1000.0 / reference.avg_latency_ms)
    if reference.tps_per_connection > 0:
        return reference.band_id, reference.tps_per_connection
    fallback = max((b.tps_per_connection for b in bands), default=0.0)
    return reference.band_id, finite(fallback)


def classify_bottleneck(
    utilization: float, observed_ms: float, predicted_ms: float, error_rate: float
) -> str:
    if utilization > HIGH_UTILIZATION:
        return "queue"
    if observed_ms > IO_LATENCY_FACTOR * predicted_ms:
        return "io"
    if error_rate > CONTENTION_ERROR_RATE:
        return "contention"
    return "cpu"


def analyze_queueing(bands: Sequence[BandMetrics]) -> QueueingAnalysis | None:
    if not bands:
        return None

    reference_id, mu = estimate_service_rate(bands)
    estimates: list[QueueingEstimate] = []
    for band in bands:
        servers = band.connections
        arrival = band.total_tps
        rho = safe_div(arrival, servers * mu)
        if mu > 0 and rho < 1:
            wait_ms = finite((1 / mu) * rho / (1 - rho) * 1000)
        else:
            wait_ms = SATURATED_WAIT_MS if arrival > 0 else 0.0
        estimates.append(
            QueueingEstimate(
                band_id=band.band_id,
                servers=servers,
                arrival_rate=arrival,
                service_rate=mu,
                utilization=rho,
                predicted_wait_ms=min(wait_ms, SATURATED_WAIT_MS),
                observed_latency_ms=band.avg_latency_ms,
                bottleneck=classify_bottleneck(
                    rho, band.avg_latency_ms, wait_ms, band.error_rate
                ),
            )
        )
    return QueueingAnalysis(
        model="M/M/c",
        reference_band=reference_id,
        service_rate=mu,
        estimates=estimates,
    )
