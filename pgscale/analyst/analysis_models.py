"""Data classes for scaling analysis results."""

from dataclasses import dataclass, field


@dataclass
class MarginalGain:
    """First differences between two consecutive bands."""

    from_band: int
    to_band: int
    delta_workers: int
    delta_connections: int
    delta_tps: float
    tps_per_added_worker: float
    tps_per_added_connection: float
    efficiency_change: float
    latency_change_ms: float


@dataclass
class InflectionPoint:
    band_id: int
    kind: str
    significance: str
    magnitude: float
    description: str


@dataclass
class BandPrediction:
    band_id: int
    predicted: float
    actual: float
    residual: float


@dataclass
class CurveFit:
    """Best-fitting TPS model over the worker axis."""

    model_type: str
    coefficients: dict[str, float]
    r_squared: float
    rmse: float
    formula: str
    predictions: list[BandPrediction] = field(default_factory=list)
    candidates: dict[str, float] = field(default_factory=dict)


@dataclass
class CapacityAnalysis:
    total_capacity: float
    average_capacity: float
    peak_capacity: float
    capacity_efficiency: float


@dataclass
class QueueingEstimate:
    band_id: int
    servers: int
    arrival_rate: float
    service_rate: float
    utilization: float
    predicted_wait_ms: float
    observed_latency_ms: float
    bottleneck: str


@dataclass
class QueueingAnalysis:
    model: str
    reference_band: int
    service_rate: float
    estimates: list[QueueingEstimate] = field(default_factory=list)


@dataclass
class Outlier:
    band_id: int
    metric: str
    value: float
    z_score: float
    severity: str


@dataclass
class PerformanceRegion:
    start_band: int
    end_band: int
    kind: str
    confidence: float
    description: str


@dataclass
class ScalabilityBreakpoint:
    """Band where throughput per connection fell sharply."""

    band_id: int
    connections: int
    kind: str
    impact: float
    description: str


@dataclass
class ConnectionRange:
    minimum: int
    maximum: int
    optimal: int
    optimal_band: int


@dataclass
class AnalysisSummary:
    total_bands: int = 0
    peak_throughput_band: int = 0
    max_throughput: float = 0.0
    best_latency_band: int = 0
    min_latency_p95_ms: float = 0.0
    overall_stability: float = 0.0


@dataclass
class Recommendation:
    type: str
    priority: str
    category: str
    suggestion: str
    expected_gain: float = 0.0
    confidence: float = 0.0


@dataclass
class DescriptiveStats:
    count: int = 0
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    variance: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    coefficient_of_variation: float = 0.0
    skewness: float = 0.0
    kurtosis: float = 0.0
    ci95_lower: float = 0.0
    ci95_upper: float = 0.0
    ci99_lower: float = 0.0
    ci99_upper: float = 0.0


@dataclass
class TrendAnalysis:
    direction: str
    slope: float
    r_squared: float


@dataclass
class AnalysisReport:
    """Complete analysis of one scaling run.

    A default-constructed report is the empty report attached when
    analysis could not run.
    """

    band_count: int = 0
    marginal_gains: list[MarginalGain] = field(default_factory=list)
    inflection_points: list[InflectionPoint] = field(default_factory=list)
    curve_fit: CurveFit | None = None
    capacity: CapacityAnalysis | None = None
    queueing: QueueingAnalysis | None = None
    outliers: list[Outlier] = field(default_factory=list)
    regions: list[PerformanceRegion] = field(default_factory=list)
    breakpoints: list[ScalabilityBreakpoint] = field(default_factory=list)
    connection_range: ConnectionRange | None = None
    summary: AnalysisSummary | None = None
    recommendations: list[Recommendation] = field(default_factory=list)
    throughput_stats: DescriptiveStats | None = None
    latency_stats: DescriptiveStats | None = None
    error_rate_stats: DescriptiveStats | None = None
    correlations: dict[str, float] = field(default_factory=dict)
    throughput_trend: TrendAnalysis | None = None
    scalability_score: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.band_count == 0
