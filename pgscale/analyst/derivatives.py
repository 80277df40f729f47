"""Marginal-gain (first difference) and inflection (second difference) analysis.

Dependencies:
    - pgscale.analyst.statistics: safe_div, finite
"""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.analysis_models import InflectionPoint, MarginalGain
from pgscale.analyst.statistics import finite, safe_div
from pgscale.common.models import BandMetrics

TPS_INFLECTION_THRESHOLD = 1.0
TPS_MEDIUM_THRESHOLD = 5.0
TPS_HIGH_THRESHOLD = 10.0
LATENCY_INFLECTION_THRESHOLD_MS = 5.0
LATENCY_HIGH_THRESHOLD_MS = 20.0


def calculate_marginal_gains(bands: Sequence[BandMetrics]) -> list[MarginalGain]:
    """First differences between each pair of consecutive bands.

    Per-unit gains are 0.0 when the corresponding dimension did not change.
    """
    gains: list[MarginalGain] = []
    for prev, cur in zip(bands, bands[1:]):
        delta_workers = cur.workers - prev.workers
        delta_connections = cur.connections - prev.connections
        delta_tps = finite(cur.total_tps - prev.total_tps)
        gains.append(
            MarginalGain(
                from_band=prev.band_id,
                to_band=cur.band_id,
                delta_workers=delta_workers,
                delta_connections=delta_connections,
                delta_tps=delta_tps,
                tps_per_added_worker=safe_div(delta_tps, delta_workers),
                tps_per_added_connection=safe_div(delta_tps, delta_connections),
                efficiency_change=finite(cur.worker_efficiency - prev.worker_efficiency),
                latency_change_ms=finite(cur.avg_latency_ms - prev.avg_latency_ms),
            )
        )
    return gains


def _tps_significance(magnitude: float) -> str:
    if magnitude > TPS_HIGH_THRESHOLD:
        return "high"
    if magnitude > TPS_MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def detect_inflection_points(gains: Sequence[MarginalGain]) -> list[InflectionPoint]:
    """Flag bands where the marginal-gain series bends.

    A TPS inflection needs |Δ²TPS| > 1 (medium above 5, high above 10); a
    latency inflection needs |Δ²latency| > 5 ms (high above 20 ms). Points
    are attributed to the later band of the current gain.
    """
    points: list[InflectionPoint] = []
    for prev, cur in zip(gains, gains[1:]):
        second_tps = finite(cur.delta_tps - prev.delta_tps)
        if abs(second_tps) > TPS_INFLECTION_THRESHOLD:
            kind = "acceleration" if second_tps > 0 else "deceleration"
            points.append(
                InflectionPoint(
                    band_id=cur.to_band,
                    kind=kind,
                    significance=_tps_significance(abs(second_tps)),
                    magnitude=second_tps,
                    description=f"TPS growth {kind} detected (Δ²TPS: {second_tps:.2f})",
                )
            )

        second_latency = finite(cur.latency_change_ms - prev.latency_change_ms)
        if abs(second_latency) > LATENCY_INFLECTION_THRESHOLD_MS:
            kind = "latency_spike" if second_latency > 0 else "latency_improvement"
            significance = "high" if abs(second_latency) > LATENCY_HIGH_THRESHOLD_MS else "medium"
            label = "spike" if second_latency > 0 else "improvement"
            points.append(
                InflectionPoint(
                    band_id=cur.to_band,
                    kind=kind,
                    significance=significance,
                    magnitude=second_latency,
                    description=f"Latency {label} detected (Δ²latency: {second_latency:.2f}ms)",
                )
            )
    return points
