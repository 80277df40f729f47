"""Analytics engine for progressive scaling results.

This module provides the AnalyticsEngine class, which runs every
sub-analysis over an ordered list of band results and assembles an
AnalysisReport.

Sub-analyses and their minimum band counts:
    - marginal gains, cumulative capacity, queueing, connection range,
      summary: 2
    - inflection points, curve fit, regions, outliers, breakpoints: 3

Dependencies:
    - pgscale.analyst.derivatives: marginal gains and inflections
    - pgscale.analyst.curve_fit: model fitting
    - pgscale.analyst.capacity: trapezoidal capacity
    - pgscale.analyst.queueing: M/M/c estimates
    - pgscale.analyst.outliers: z-score outliers
    - pgscale.analyst.regions: region classification
    - pgscale.analyst.scalability: efficiency cliffs, connection range, summary
    - pgscale.analyst.statistics: descriptive statistics and trends
    - pgscale.analyst.recommendations: ranked recommendations
"""

from __future__ import annotations

from collections.abc import Sequence

from pgscale.analyst.analysis_models import AnalysisReport
from pgscale.analyst.capacity import calculate_capacity
from pgscale.analyst.curve_fit import fit_curve
from pgscale.analyst.derivatives import calculate_marginal_gains, detect_inflection_points
from pgscale.analyst.errors import InsufficientDataError
from pgscale.analyst.outliers import detect_outliers
from pgscale.analyst.queueing import analyze_queueing
from pgscale.analyst.recommendations import generate_recommendations
from pgscale.analyst.regions import classify_regions
from pgscale.analyst.scalability import detect_breakpoints, optimal_connection_range, summarize
from pgscale.analyst.statistics import correlation, describe, scalability_score, trend
from pgscale.common.logging import get_logger
from pgscale.common.models import BandMetrics

logger = get_logger("analyst.analyzer")


class AnalyticsEngine:
    """Computes the full analysis report for a completed run."""

    MIN_BANDS = 2

    def analyze(self, bands: Sequence[BandMetrics]) -> AnalysisReport:
        """Analyze an ordered list of band results.

        Args:
            bands: Completed bands in execution order

        Returns:
            Populated AnalysisReport

        Raises:
            InsufficientDataError: If fewer than two bands are given
        """
        if len(bands) < self.MIN_BANDS:
            raise InsufficientDataError(
                f"analysis requires at least {self.MIN_BANDS} bands, got {len(bands)}",
                min_required=self.MIN_BANDS,
            )

        throughput = [b.total_tps for b in bands]
        latency = [b.avg_latency_ms for b in bands]
        error_rates = [b.error_rate for b in bands]

        gains = calculate_marginal_gains(bands)
        report = AnalysisReport(
            band_count=len(bands),
            marginal_gains=gains,
            inflection_points=detect_inflection_points(gains),
            curve_fit=fit_curve(bands),
            capacity=calculate_capacity(bands),
            queueing=analyze_queueing(bands),
            outliers=detect_outliers(bands),
            regions=classify_regions(bands),
            breakpoints=detect_breakpoints(bands),
            connection_range=optimal_connection_range(bands),
            summary=summarize(bands),
            throughput_stats=describe(throughput),
            latency_stats=describe(latency),
            error_rate_stats=describe(error_rates),
            correlations=self._correlations(bands),
            throughput_trend=trend(throughput),
            scalability_score=scalability_score(throughput),
        )
        report.recommendations = generate_recommendations(report)

        logger.info(
            "Analysis complete",
            {
                "bands": len(bands),
                "inflection_points": len(report.inflection_points),
                "regions": [r.kind for r in report.regions],
                "breakpoints": [b.band_id for b in report.breakpoints],
                "best_fit": report.curve_fit.model_type if report.curve_fit else None,
                "recommendations": len(report.recommendations),
            },
        )
        return report

    def _correlations(self, bands: Sequence[BandMetrics]) -> dict[str, float]:
        workers = [float(b.workers) for b in bands]
        connections = [float(b.connections) for b in bands]
        throughput = [b.total_tps for b in bands]
        latency = [b.avg_latency_ms for b in bands]
        errors = [b.error_rate for b in bands]
        return {
            "workers_throughput": correlation(workers, throughput),
            "connections_throughput": correlation(connections, throughput),
            "throughput_latency": correlation(throughput, latency),
            "latency_error_rate": correlation(latency, errors),
        }
