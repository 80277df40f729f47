"""Operating-point selection from band results.

Dependencies:
    - pgscale.common.models: BandMetrics, OptimalConfig, ScalingInsights
"""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.statistics import safe_div
from pgscale.common.models import BandMetrics, OptimalConfig, ScalingInsights

DIMINISHING_GAIN_THRESHOLD = 20.0
EFFICIENT_PEAK_SHARE = 0.8
LATENCY_SCALE_MS = 100.0
LATENCY_PENALTY_MS = 100.0

EFFICIENT_REASONING = "Selected for optimal efficiency while maintaining high throughput"
PEAK_REASONING = "Selected for maximum throughput"


def sweet_spot_score(band: BandMetrics) -> float:
    """Per-worker throughput discounted by p95 latency.

    Example:
        A band with 50 TPS per worker and p95 of 100 ms scores 50 / 2 = 25.
    """
    return band.tps_per_worker / (1 + band.p95_latency_ms / LATENCY_SCALE_MS)


def efficiency_score(band: BandMetrics) -> float:
    """TPS per worker, scaled by 100 / avg latency when latency exceeds 100 ms.

    Example:
        A band with 100 TPS per worker at 500 ms average latency scores
        100 * 100 / 500 = 20; the same band at 50 ms scores 100.
    """
    penalty = 1.0
    if band.avg_latency_ms > LATENCY_PENALTY_MS:
        penalty = LATENCY_PENALTY_MS / band.avg_latency_ms
    return band.tps_per_worker * penalty


def find_sweet_spot(bands: Sequence[BandMetrics]) -> BandMetrics | None:
    """Band with the highest sweet-spot score (earliest on ties)."""
    best = None
    for band in bands:
        if best is None or sweet_spot_score(band) > sweet_spot_score(best):
            best = band
    return best


def find_diminishing_returns(bands: Sequence[BandMetrics]) -> BandMetrics | None:
    """First band, from the third on, whose marginal TPS per added connection is below 20.

    When connections did not change between the two bands the gain per
    added worker is used; pairs where neither changed are skipped.
    """
    for i in range(2, len(bands)):
        prev, cur = bands[i - 1], bands[i]
        delta_tps = cur.total_tps - prev.total_tps
        if cur.connections != prev.connections:
            gain = safe_div(delta_tps, cur.connections - prev.connections)
        elif cur.workers != prev.workers:
            gain = safe_div(delta_tps, cur.workers - prev.workers)
        else:
            continue
        if gain < DIMINISHING_GAIN_THRESHOLD:
            return cur
    return None


def find_overload_point(bands: Sequence[BandMetrics]) -> BandMetrics | None:
    """First band whose TPS is below its predecessor's."""
    for prev, cur in zip(bands, bands[1:]):
        if cur.total_tps < prev.total_tps:
            return cur
    return None


def select_insights(bands: Sequence[BandMetrics]) -> ScalingInsights:
    sweet = find_sweet_spot(bands)
    diminishing = find_diminishing_returns(bands)
    overload = find_overload_point(bands)
    return ScalingInsights(
        sweet_spot_band=sweet.band_id if sweet else None,
        diminishing_returns_band=diminishing.band_id if diminishing else None,
        overload_band=overload.band_id if overload else None,
    )


def select_optimal(bands: Sequence[BandMetrics]) -> OptimalConfig | None:
    """Pick the recommended operating point.

    The most efficient band (highest efficiency_score, so latency above
    100 ms counts against it) wins when it delivers at least 80% of peak
    TPS; otherwise the peak-TPS band is chosen.

    Returns:
        OptimalConfig, or None when there are no bands
    """
    if not bands:
        return None

    peak = max(bands, key=lambda b: b.total_tps)
    efficient = max(bands, key=efficiency_score)

    if efficient.total_tps >= EFFICIENT_PEAK_SHARE * peak.total_tps:
        chosen, reasoning = efficient, EFFICIENT_REASONING
    else:
        chosen, reasoning = peak, PEAK_REASONING

    return OptimalConfig(
        band_id=chosen.band_id,
        workers=chosen.workers,
        connections=chosen.connections,
        expected_tps=chosen.total_tps,
        expected_latency_ms=chosen.avg_latency_ms,
        efficiency=chosen.worker_efficiency,
        reasoning=reasoning,
    )
