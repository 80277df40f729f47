"""Performance region classification.

Each triple of consecutive bands is classified from the relative TPS
growth into and out of its middle band; consecutive triples with the same
class are merged into one region. A region starts at the middle band of
its first triple and ends just before the next region starts (the last
region ends at the final band).
"""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.analysis_models import PerformanceRegion
from pgscale.analyst.statistics import safe_div
from pgscale.common.models import BandMetrics

LINEAR_MIN_GROWTH = 0.1
LINEAR_MAX_SPREAD = 0.05
DIMINISHING_MIN_GROWTH = 0.05
DIMINISHING_RATIO = 0.7
SATURATION_MAX_GROWTH = 0.02

REGION_CONFIDENCE = {
    "linear_scaling": 0.8,
    "diminishing_returns": 0.7,
    "saturation": 0.9,
    "degradation": 0.8,
    "transitional": 0.5,
}

REGION_DESCRIPTIONS = {
    "linear_scaling": (
        "Performance scales linearly with resource increases. Optimal efficiency region."
    ),
    "diminishing_returns": (
        "Performance gains decrease with additional resources. Consider cost-benefit analysis."
    ),
    "saturation": (
        "System has reached maximum capacity. Additional resources provide minimal benefit."
    ),
    "degradation": (
        "Performance decreases with additional resources. "
        "System may be over-saturated or experiencing contention."
    ),
    "transitional": "Performance behavior is transitioning between different scaling patterns.",
}


def _growth(prev: float, cur: float) -> float:
    return safe_div(cur - prev, prev)


def classify_triple(before: float, middle: float, after: float) -> str:
    """Classify the TPS growth pattern around a middle band.

    Example:
        >>> classify_triple(100.0, 190.0, 195.0)
        'diminishing_returns'
    """
    g1 = _growth(before, middle)
    g2 = _growth(middle, after)

    if g1 > LINEAR_MIN_GROWTH and g2 > LINEAR_MIN_GROWTH and abs(g1 - g2) < LINEAR_MAX_SPREAD:
        return "linear_scaling"
    if g1 > DIMINISHING_MIN_GROWTH and g2 < g1 * DIMINISHING_RATIO:
        return "diminishing_returns"
    if abs(g1) < SATURATION_MAX_GROWTH and abs(g2) < SATURATION_MAX_GROWTH:
        return "saturation"
    if g1 < 0 or g2 < 0:
        return "degradation"
    return "transitional"


def _region(kind: str, start: int, end: int) -> PerformanceRegion:
    return PerformanceRegion(
        start_band=start,
        end_band=end,
        kind=kind,
        confidence=REGION_CONFIDENCE[kind],
        description=REGION_DESCRIPTIONS[kind],
    )


def classify_regions(bands: Sequence[BandMetrics]) -> list[PerformanceRegion]:
    """Classify bands into contiguous performance regions (needs 3 bands)."""
    if len(bands) < 3:
        return []

    regions: list[PerformanceRegion] = []
    current: str | None = None
    start = 0
    for i in range(1, len(bands) - 1):
        kind = classify_triple(
            bands[i - 1].total_tps, bands[i].total_tps, bands[i + 1].total_tps
        )
        if kind == current:
            continue
        if current is not None:
            regions.append(_region(current, start, bands[i - 1].band_id))
        current = kind
        start = bands[i].band_id

    regions.append(_region(current, start, bands[-1].band_id))
    return regions
