from pgscale.scaling.band_metrics import calculate_band_metrics, percentile, sanitize_float
from pgscale.scaling.engine import ScalingEngine
from pgscale.scaling.errors import BandExecutionError, ScalingCancelledError, ScalingError
from pgscale.scaling.executor import BandExecutor, BandRunConfig, BandState, Workload
from pgscale.scaling.sequence import ScalingStrategy, generate_sequence
from pgscale.scaling.sink import MetricsSink, MetricsSnapshot, classify_query
from pgscale.scaling.workers import TransactionWorkload

__all__ = [
    "BandExecutionError",
    "BandExecutor",
    "BandRunConfig",
    "BandState",
    "MetricsSink",
    "MetricsSnapshot",
    "ScalingCancelledError",
    "ScalingEngine",
    "ScalingError",
    "ScalingStrategy",
    "TransactionWorkload",
    "Workload",
    "calculate_band_metrics",
    "classify_query",
    "generate_sequence",
    "percentile",
    "sanitize_float",
]
