"""Ranked recommendations from a scaling analysis.

Sources, in generation order:
    - high-significance TPS decelerations (worker count)
    - bands with utilization above 0.8 (connection pool size)
    - linear-scaling and degradation regions
    - series statistics: decreasing throughput trend, high mean latency,
      high error rate, unstable throughput, weak scalability

The list is sorted high -> medium -> low (stable within a priority) and
never empty: a fallback is emitted when nothing else applies.

Dependencies:
    - pgscale.analyst.analysis_models: AnalysisReport, Recommendation
"""

from __future__ import annotations

from pgscale.analyst.analysis_models import AnalysisReport, Recommendation

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

HIGH_UTILIZATION = 0.8
HIGH_MEAN_LATENCY_MS = 100.0
HIGH_ERROR_RATE_PCT = 5.0
UNSTABLE_THROUGHPUT_CV = 0.3
WEAK_SCALABILITY = 0.7

FALLBACK_SUGGESTION = (
    "System shows good performance characteristics across tested connection ranges"
)


def _from_inflections(report: AnalysisReport) -> list[Recommendation]:
    return [
        Recommendation(
            type="configuration",
            priority="high",
            category="workers",
            suggestion=(
                f"Consider optimal worker count around band {point.band_id} "
                "where performance growth slows"
            ),
            expected_gain=15.0,
            confidence=0.8,
        )
        for point in report.inflection_points
        if point.kind == "deceleration" and point.significance == "high"
    ]


def _from_queueing(report: AnalysisReport) -> list[Recommendation]:
    if report.queueing is None:
        return []
    return [
        Recommendation(
            type="configuration",
            priority="medium",
            category="connections",
            suggestion=(
                f"Band {estimate.band_id} shows high utilization ({estimate.utilization:.2f}). "
                "Consider increasing connection pool size"
            ),
            expected_gain=10.0,
            confidence=0.7,
        )
        for estimate in report.queueing.estimates
        if estimate.utilization > HIGH_UTILIZATION
    ]


def _from_regions(report: AnalysisReport) -> list[Recommendation]:
    recommendations = []
    for region in report.regions:
        span = f"Bands {region.start_band}-{region.end_band}"
        if region.kind == "linear_scaling":
            recommendations.append(
                Recommendation(
                    type="configuration",
                    priority="low",
                    category="workers",
                    suggestion=(
                        f"{span} show good linear scaling. "
                        "This configuration range is well-suited for production"
                    ),
                    expected_gain=0.0,
                    confidence=region.confidence,
                )
            )
        elif region.kind == "degradation":
            recommendations.append(
                Recommendation(
                    type="configuration",
                    priority="high",
                    category="system",
                    suggestion=(
                        f"{span} show performance degradation. "
                        "Investigate resource contention or database tuning"
                    ),
                    expected_gain=25.0,
                    confidence=region.confidence,
                )
            )
    return recommendations


def _from_statistics(report: AnalysisReport) -> list[Recommendation]:
    recommendations = []

    if report.throughput_trend and report.throughput_trend.direction == "decreasing":
        recommendations.append(
            Recommendation(
                type="performance",
                priority="high",
                category="throughput",
                suggestion=(
                    "Throughput decreases as concurrency grows. "
                    "Investigate lock contention or connection pool exhaustion"
                ),
                confidence=0.7,
            )
        )

    if report.latency_stats and report.latency_stats.mean > HIGH_MEAN_LATENCY_MS:
        recommendations.append(
            Recommendation(
                type="performance",
                priority="medium",
                category="latency",
                suggestion=(
                    f"Mean band latency is {report.latency_stats.mean:.1f}ms. "
                    "Review query plans and indexing"
                ),
                confidence=0.6,
            )
        )

    if report.error_rate_stats and report.error_rate_stats.mean > HIGH_ERROR_RATE_PCT:
        recommendations.append(
            Recommendation(
                type="reliability",
                priority="high",
                category="errors",
                suggestion=(
                    f"Mean error rate is {report.error_rate_stats.mean:.2f}%. "
                    "Check for deadlocks, serialization failures or timeouts"
                ),
                confidence=0.8,
            )
        )

    if (
        report.throughput_stats
        and report.throughput_stats.coefficient_of_variation > UNSTABLE_THROUGHPUT_CV
    ):
        recommendations.append(
            Recommendation(
                type="stability",
                priority="low",
                category="throughput",
                suggestion=(
                    "Throughput varies widely between bands. "
                    "Consider longer measurement windows for more stable results"
                ),
                confidence=0.5,
            )
        )

    if report.band_count >= 3 and 0 < report.scalability_score < WEAK_SCALABILITY:
        recommendations.append(
            Recommendation(
                type="scalability",
                priority="medium",
                category="system",
                suggestion=(
                    f"Scalability score is {report.scalability_score:.2f}. "
                    "Growth between bands is inconsistent"
                ),
                confidence=0.6,
            )
        )

    return recommendations


def generate_recommendations(report: AnalysisReport) -> list[Recommendation]:
    """Build the ranked recommendation list for a populated report."""
    recommendations = (
        _from_inflections(report)
        + _from_queueing(report)
        + _from_regions(report)
        + _from_statistics(report)
    )

    if not recommendations:
        recommendations.append(
            Recommendation(
                type="general",
                priority="low",
                category="system",
                suggestion=FALLBACK_SUGGESTION,
                confidence=0.5,
            )
        )

    return sorted(recommendations, key=lambda r: PRIORITY_ORDER.get(r.priority, 3))
