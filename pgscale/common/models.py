import math
from datetime import UTC, datetime
from functools import partial
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pgscale.analyst.analysis_models import AnalysisReport

# Helper for timezone-aware timestamps
_utc_now = partial(datetime.now, tz=UTC)


def _finite(v: Any) -> Any:
    if isinstance(v, float) and not math.isfinite(v):
        return 0.0
    return v


class BandCompleteCallback(Protocol):
    """Protocol for callbacks invoked after each band completes.

    Example:
        >>> def on_band(metrics: BandMetrics) -> None:
        ...     print(f"band {metrics.band_id}: {metrics.total_tps:.1f} TPS")
        >>>
        >>> engine = ScalingEngine(config, workload, on_band_complete=on_band)
    """

    def __call__(self, metrics: "BandMetrics") -> None: ...


class ScalingBand(BaseModel):
    """One (workers, connections) concurrency level."""

    model_config = ConfigDict(frozen=True)

    workers: int
    connections: int

    @field_validator("workers", "connections")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate workers and connections are positive."""
        if v <= 0:
            raise ValueError("workers and connections must be greater than 0")
        return v


class ConfidenceInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    lower: float = 0.0
    upper: float = 0.0

    @field_validator("*")
    @classmethod
    def sanitize_floats(cls, v: Any) -> Any:
        return _finite(v)


class BandHealth(BaseModel):
    """Health summary of a band built from its interval samples."""

    model_config = ConfigDict(frozen=True)

    sample_count: int = 0
    health_score: float = 1.0
    avg_error_rate: float = 0.0
    max_error_rate: float = 0.0
    healthy_seconds: float = 0.0
    unhealthy_seconds: float = 0.0

    @field_validator("*")
    @classmethod
    def sanitize_floats(cls, v: Any) -> Any:
        return _finite(v)


class BandMetrics(BaseModel):
    """Metrics for one executed band.

    All float fields are finite: NaN and infinities are stored as 0.0.
    """

    model_config = ConfigDict(frozen=True)

    band_id: int
    workers: int
    connections: int
    start_time: datetime = Field(default_factory=_utc_now)
    end_time: datetime = Field(default_factory=_utc_now)
    duration_seconds: float = 0.0

    total_tps: float = 0.0
    total_qps: float = 0.0
    total_transactions: int = 0
    total_aborted: int = 0
    total_queries: int = 0
    query_counts: dict[str, int] = Field(default_factory=dict)

    avg_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p90_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    min_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    stddev_latency_ms: float = 0.0
    variance_latency_ms: float = 0.0
    coefficient_of_variation: float = 0.0
    confidence_interval: ConfidenceInterval = Field(default_factory=ConfidenceInterval)

    error_rate: float = 0.0
    total_errors: int = 0
    error_types: dict[str, int] = Field(default_factory=dict)

    tps_per_worker: float = 0.0
    tps_per_connection: float = 0.0
    worker_efficiency: float = 0.0
    connection_utilization: float = 0.0

    pg_stats: dict[str, Any] | None = None
    latency_samples: list[int] = Field(default_factory=list)
    health: BandHealth | None = None

    @field_validator("*")
    @classmethod
    def sanitize_floats(cls, v: Any) -> Any:
        """Replace NaN and infinite floats with 0.0."""
        return _finite(v)

    @field_validator("latency_samples")
    @classmethod
    def validate_latency_samples(cls, v: list[int]) -> list[int]:
        """Validate at most 10,000 raw latency samples are retained."""
        if len(v) > 10_000:
            raise ValueError("latency_samples must hold at most 10000 entries")
        return v


class OptimalConfig(BaseModel):
    """Recommended operating point."""

    model_config = ConfigDict(frozen=True)

    band_id: int
    workers: int
    connections: int
    expected_tps: float
    expected_latency_ms: float
    efficiency: float = 0.0
    reasoning: str = ""


class ScalingInsights(BaseModel):
    """Sweet spot, diminishing-returns and overload band ids (None when absent)."""

    model_config = ConfigDict(frozen=True)

    sweet_spot_band: int | None = None
    diminishing_returns_band: int | None = None
    overload_band: int | None = None


class ProgressInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    running: bool = False
    current_band: int = 0
    total_bands: int = 0
    completed_bands: int = 0
    estimated_remaining_seconds: float = 0.0


class ScalingResult(BaseModel):
    """Finalized outcome of one scaling run. Built once, never mutated."""

    model_config = ConfigDict(frozen=True)

    run_id: str | None = None
    test_start: datetime
    test_end: datetime
    total_duration_seconds: float
    workload_name: str
    strategy: str
    bands: tuple[BandMetrics, ...] = ()
    analysis: AnalysisReport = Field(default_factory=AnalysisReport)
    analysis_error: str | None = None
    insights: ScalingInsights = Field(default_factory=ScalingInsights)
    optimal_config: OptimalConfig | None = None
    cancelled: bool = False
    terminated_early: bool = False
    termination_reason: str | None = None

    def band(self, band_id: int) -> BandMetrics | None:
        for metrics in self.bands:
            if metrics.band_id == band_id:
                return metrics
        return None
