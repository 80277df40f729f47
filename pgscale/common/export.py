"""JSON and CSV export of scaling results.

Dependencies:
    - pgscale.common.persistence: atomic file writes
"""

import csv
import io
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pgscale.common.logging import get_logger
from pgscale.common.models import BandMetrics, ScalingResult
from pgscale.common.persistence import write_text_atomic

logger = get_logger("common.export")

ExportFormat = Literal["json", "csv", "both"]

CSV_COLUMNS = [
    "band_id",
    "workers",
    "connections",
    "duration_sec",
    "total_tps",
    "total_qps",
    "avg_latency_ms",
    "p50_latency_ms",
    "p95_latency_ms",
    "p99_latency_ms",
    "error_rate",
    "total_errors",
    "stddev_latency",
    "variance_latency",
    "coefficient_of_var",
    "confidence_lower",
    "confidence_upper",
    "tps_per_worker",
    "tps_per_connection",
    "worker_efficiency",
    "connection_util",
]


def _csv_row(band: BandMetrics) -> dict[str, object]:
    return {
        "band_id": band.band_id,
        "workers": band.workers,
        "connections": band.connections,
        "duration_sec": f"{band.duration_seconds:.2f}",
        "total_tps": f"{band.total_tps:.2f}",
        "total_qps": f"{band.total_qps:.2f}",
        "avg_latency_ms": f"{band.avg_latency_ms:.3f}",
        "p50_latency_ms": f"{band.p50_latency_ms:.3f}",
        "p95_latency_ms": f"{band.p95_latency_ms:.3f}",
        "p99_latency_ms": f"{band.p99_latency_ms:.3f}",
        "error_rate": f"{band.error_rate:.4f}",
        "total_errors": band.total_errors,
        "stddev_latency": f"{band.stddev_latency_ms:.3f}",
        "variance_latency": f"{band.variance_latency_ms:.3f}",
        "coefficient_of_var": f"{band.coefficient_of_variation:.4f}",
        "confidence_lower": f"{band.confidence_interval.lower:.3f}",
        "confidence_upper": f"{band.confidence_interval.upper:.3f}",
        "tps_per_worker": f"{band.tps_per_worker:.2f}",
        "tps_per_connection": f"{band.tps_per_connection:.2f}",
        "worker_efficiency": f"{band.worker_efficiency:.2f}",
        "connection_util": f"{band.connection_utilization:.2f}",
    }


def export_result_json(result: ScalingResult, output_path: str | Path) -> Path:
    """Write the full result, analysis included, as indented JSON.

    Raw latency samples are left out to keep the file readable.
    """
    output_path = Path(output_path)
    content = result.model_dump_json(
        indent=2, exclude={"bands": {"__all__": {"latency_samples"}}}
    )
    write_text_atomic(output_path, content + "\n")
    logger.info("Exported scaling result", {"path": str(output_path), "format": "json"})
    return output_path


def export_result_csv(result: ScalingResult, output_path: str | Path) -> Path:
    """Write one CSV row per band."""
    output_path = Path(output_path)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for band in result.bands:
        writer.writerow(_csv_row(band))
    write_text_atomic(output_path, buffer.getvalue())
    logger.info("Exported scaling result", {"path": str(output_path), "format": "csv"})
    return output_path


def export_basename(workload_name: str, when: datetime | None = None) -> str:
    """File stem: progressive_scaling_<workload>_<YYYYmmdd_HHMMSS>.

    Example:
        >>> export_basename("tpcc", datetime(2024, 1, 2, 3, 4, 5))
        'progressive_scaling_tpcc_20240102_030405'
    """
    when = when or datetime.now(tz=UTC)
    safe_name = re.sub(r"[^A-Za-z0-9_-]+", "_", workload_name).strip("_") or "workload"
    return f"progressive_scaling_{safe_name}_{when:%Y%m%d_%H%M%S}"


def export_results(
    result: ScalingResult,
    directory: str | Path,
    fmt: ExportFormat = "both",
    when: datetime | None = None,
) -> list[Path]:
    """Export a result in the requested format(s).

    Returns:
        Paths written

    Raises:
        ValueError: On an unknown format
    """
    if fmt not in ("json", "csv", "both"):
        raise ValueError(f"unsupported export format: {fmt!r}")

    stem = Path(directory) / export_basename(result.workload_name, when or result.test_start)
    written = []
    if fmt in ("json", "both"):
        written.append(export_result_json(result, stem.with_suffix(".json")))
    if fmt in ("csv", "both"):
        written.append(export_result_csv(result, stem.with_suffix(".csv")))
    return written
