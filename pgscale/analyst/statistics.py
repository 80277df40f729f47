"""Descriptive statistics and regression helpers for band series.

Pure Python implementations; every result is finite. Degenerate inputs
(empty series, zero variance) produce zeros rather than errors.

Metrics computed:
    - Descriptive: mean, median, sample variance and standard deviation,
      coefficient of variation, skewness, excess kurtosis, 95%/99% CIs
    - Least-squares line and its R²
    - Pearson correlation between two series
    - Throughput trend over the band index
    - Scalability score from the consistency of band-to-band growth

Dependencies:
    - pgscale.analyst.analysis_models: DescriptiveStats, TrendAnalysis
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from pgscale.analyst.analysis_models import DescriptiveStats, TrendAnalysis

Z_95 = 1.96
Z_99 = 2.576
TREND_THRESHOLD = 0.1


def finite(value: float) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def safe_div(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return finite(numerator / denominator)


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return finite(math.fsum(values) / len(values))


def sample_std_dev(values: Sequence[float]) -> float:
    """Sample standard deviation (n - 1 denominator); 0.0 below two values."""
    n = len(values)
    if n < 2:
        return 0.0
    m = mean(values)
    return finite(math.sqrt(math.fsum((v - m) ** 2 for v in values) / (n - 1)))


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> tuple[float, float]:
    """Least-squares line through (xs, ys).

    Returns:
        (slope, intercept); a flat line through the mean when x has no spread

    Example:
        >>> linear_regression([1, 2, 3], [2, 4, 6])
        (2.0, 0.0)
    """
    n = len(xs)
    if n == 0:
        return 0.0, 0.0

    sum_x = math.fsum(xs)
    sum_y = math.fsum(ys)
    sum_xy = math.fsum(x * y for x, y in zip(xs, ys))
    sum_x2 = math.fsum(x * x for x in xs)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0, finite(sum_y / n)

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return finite(slope), finite(intercept)


def r_squared(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Coefficient of determination; 0.0 when actual has no variance."""
    if not actual:
        return 0.0
    m = mean(actual)
    ss_tot = math.fsum((y - m) ** 2 for y in actual)
    ss_res = math.fsum((y - p) ** 2 for y, p in zip(actual, predicted))
    if ss_tot == 0:
        return 0.0
    return finite(1 - ss_res / ss_tot)


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Descriptive statistics for a series.

    Skewness and kurtosis use the population moments normalized by the
    sample standard deviation; kurtosis is reported as excess kurtosis.
    """
    n = len(values)
    if n == 0:
        return DescriptiveStats()

    ordered = sorted(values)
    m = mean(values)
    mid = n // 2
    median = ordered[mid] if n % 2 else (ordered[mid - 1] + ordered[mid]) / 2
    sd = sample_std_dev(values)

    skewness = kurtosis = 0.0
    if sd > 0:
        skewness = math.fsum(((v - m) / sd) ** 3 for v in values) / n
        kurtosis = math.fsum(((v - m) / sd) ** 4 for v in values) / n - 3

    margin95 = safe_div(Z_95 * sd, math.sqrt(n))
    margin99 = safe_div(Z_99 * sd, math.sqrt(n))
    return DescriptiveStats(
        count=n,
        mean=m,
        median=finite(median),
        std_dev=sd,
        variance=finite(sd * sd),
        minimum=finite(ordered[0]),
        maximum=finite(ordered[-1]),
        coefficient_of_variation=safe_div(sd, m),
        skewness=finite(skewness),
        kurtosis=finite(kurtosis),
        ci95_lower=finite(m - margin95),
        ci95_upper=finite(m + margin95),
        ci99_lower=finite(m - margin99),
        ci99_upper=finite(m + margin99),
    )


def correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation; 0.0 for mismatched, short or constant series."""
    n = len(xs)
    if n != len(ys) or n < 2:
        return 0.0
    mx, my = mean(xs), mean(ys)
    cov = math.fsum((x - mx) * (y - my) for x, y in zip(xs, ys))
    var_x = math.fsum((x - mx) ** 2 for x in xs)
    var_y = math.fsum((y - my) ** 2 for y in ys)
    return safe_div(cov, math.sqrt(var_x * var_y))


def trend(values: Sequence[float]) -> TrendAnalysis:
    """Linear trend of a series over its index.

    Direction is "increasing" above a slope of 0.1, "decreasing" below
    -0.1 and "stable" otherwise.
    """
    xs = [float(i) for i in range(len(values))]
    slope, intercept = linear_regression(xs, values)
    predicted = [slope * x + intercept for x in xs]

    if slope > TREND_THRESHOLD:
        direction = "increasing"
    elif slope < -TREND_THRESHOLD:
        direction = "decreasing"
    else:
        direction = "stable"
    return TrendAnalysis(direction=direction, slope=slope, r_squared=r_squared(values, predicted))


def scalability_score(throughputs: Sequence[float]) -> float:
    """Consistency of growth between consecutive bands, in [0, 1].

    Computed as max(0, 1 - CV) over the band-to-band throughput ratios;
    1.0 means every step scaled throughput by the same factor.
    """
    ratios = [cur / prev for prev, cur in zip(throughputs, throughputs[1:]) if prev > 0]
    if len(ratios) < 2:
        return 0.0 if not ratios else 1.0
    cv = safe_div(sample_std_dev(ratios), mean(ratios))
    return max(0.0, finite(1 - cv))
