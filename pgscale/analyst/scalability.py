"""Connection-axis scalability: efficiency cliffs, connection range, run summary.

Dependencies:
    - pgscale.analyst.statistics: describe, safe_div
"""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.analysis_models import AnalysisSummary, ConnectionRange, ScalabilityBreakpoint
from pgscale.analyst.statistics import describe, finite, safe_div
from pgscale.common.models import BandMetrics

MIN_BANDS_FOR_BREAKPOINTS = 3
CLIFF_RETAINED_EFFICIENCY = 0.8


def detect_breakpoints(bands: Sequence[BandMetrics]) -> list[ScalabilityBreakpoint]:
    """Flag bands whose TPS per connection fell more than 20% from the previous band.

    Example:
        TPS 100, 200, 210 at 2, 4, 6 connections gives 50, 50, 35 TPS per
        connection; band 3 is a cliff with impact 0.3.
    """
    if len(bands) < MIN_BANDS_FOR_BREAKPOINTS:
        return []

    breakpoints = []
    for prev, cur in zip(bands, bands[1:]):
        prev_eff = safe_div(prev.total_tps, prev.connections)
        eff = safe_div(cur.total_tps, cur.connections)
        if prev_eff > 0 and eff < prev_eff * CLIFF_RETAINED_EFFICIENCY:
            impact = finite((prev_eff - eff) / prev_eff)
            breakpoints.append(
                ScalabilityBreakpoint(
                    band_id=cur.band_id,
                    connections=cur.connections,
                    kind="cliff",
                    impact=impact,
                    description=(
                        f"Efficiency drop of {impact * 100:.1f}% at {cur.connections} connections"
                    ),
                )
            )
    return breakpoints


def optimal_connection_range(bands: Sequence[BandMetrics]) -> ConnectionRange | None:
    """Tested connection bounds and the count with the best TPS / latency ratio.

    Bands without latency are skipped when ranking; when none has latency the
    first band is reported as optimal.
    """
    if not bands:
        return None

    best = bands[0]
    best_ratio = 0.0
    for band in bands:
        if band.avg_latency_ms > 0:
            ratio = safe_div(band.total_tps, band.avg_latency_ms)
            if ratio > best_ratio:
                best, best_ratio = band, ratio

    connections = [b.connections for b in bands]
    return ConnectionRange(
        minimum=min(connections),
        maximum=max(connections),
        optimal=best.connections,
        optimal_band=best.band_id,
    )


def summarize(bands: Sequence[BandMetrics]) -> AnalysisSummary:
    if not bands:
        return AnalysisSummary()

    peak = max(bands, key=lambda b: b.total_tps)
    fastest = min(bands, key=lambda b: b.p95_latency_ms)
    cv = describe([b.total_tps for b in bands]).coefficient_of_variation
    return AnalysisSummary(
        total_bands=len(bands),
        peak_throughput_band=peak.band_id,
        max_throughput=peak.total_tps,
        best_latency_band=fastest.band_id,
        min_latency_p95_ms=fastest.p95_latency_ms,
        overall_stability=finite(1.0 / (1.0 + cv)),
    )
