"""Z-score outlier detection over band metric series."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from pgscale.analyst.analysis_models import Outlier
from pgscale.analyst.statistics import mean, sample_std_dev
from pgscale.common.models import BandMetrics

MIN_VALUES = 3

# Checked from most to least severe.
SEVERITY_THRESHOLDS = (
    (3.0, "extreme"),
    (2.5, "moderate"),
    (2.0, "mild"),
)

OUTLIER_METRICS: dict[str, Callable[[BandMetrics], float]] = {
    "throughput": lambda b: b.total_tps,
    "latency_p95": lambda b: b.p95_latency_ms,
    "error_rate": lambda b: b.error_rate,
}


def _severity(z: float) -> str | None:
    for threshold, label in SEVERITY_THRESHOLDS:
        if z > threshold:
            return label
    return None


def detect_series_outliers(
    metric: str, band_ids: Sequence[int], values: Sequence[float]
) -> list[Outlier]:
    """Flag values more than two sample standard deviations from the mean.

    Needs at least three values; a constant series has no outliers.
    """
    if len(values) < MIN_VALUES:
        return []
    m = mean(values)
    sd = sample_std_dev(values)
    if sd == 0:
        return []

    outliers = []
    for band_id, value in zip(band_ids, values):
        z = abs(value - m) / sd
        severity = _severity(z)
        if severity is not None:
            outliers.append(
                Outlier(band_id=band_id, metric=metric, value=value, z_score=z, severity=severity)
            )
    return outliers


def detect_outliers(bands: Sequence[BandMetrics]) -> list[Outlier]:
    band_ids = [b.band_id for b in bands]
    outliers: list[Outlier] = []
    for metric, getter in OUTLIER_METRICS.items():
        outliers.extend(detect_series_outliers(metric, band_ids, [getter(b) for b in bands]))
    return outliers
