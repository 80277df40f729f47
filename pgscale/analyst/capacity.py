"""Cumulative capacity: area under the TPS curve over the band index."""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.analysis_models import CapacityAnalysis
from pgscale.analyst.statistics import finite, safe_div
from pgscale.common.models import BandMetrics


def calculate_capacity(bands: Sequence[BandMetrics]) -> CapacityAnalysis | None:
    """Trapezoidal integral of TPS with unit spacing between bands.

    Average capacity is the area divided by the number of intervals, and
    capacity efficiency is average over peak, in percent.

    Example:
        For TPS 100, 200, 300 the area is 150 + 250 = 400, the average
        200 and the efficiency 200 / 300 = 66.7%.
    """
    if len(bands) < 2:
        return None

    tps = [b.total_tps for b in bands]
    area = sum((a + b) / 2 for a, b in zip(tps, tps[1:]))
    average = safe_div(area, len(tps) - 1)
    peak = max(tps)
    return CapacityAnalysis(
        total_capacity=finite(area),
        average_capacity=average,
        peak_capacity=finite(peak),
        capacity_efficiency=safe_div(average, peak) * 100,
    )
