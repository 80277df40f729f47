"""Tests for z-score outlier detection."""

import pytest

from pgscale.analyst.outliers import detect_outliers, detect_series_outliers
from tests.factories import make_band


class TestDetectSeriesOutliers:
    """Tests for detect_series_outliers."""

    @pytest.mark.parametrize(
        ("count", "severity"),
        [
            (6, "mild"),
            (10, "moderate"),
            (21, "extreme"),
        ],
    )
    def test_severity_grows_with_z_score(self, count, severity):
        """One spike among `count - 1` equal values gets a graded severity."""
        values = [10.0] * (count - 1) + [100.0]
        band_ids = list(range(1, count + 1))

        (outlier,) = detect_series_outliers("throughput", band_ids, values)

        assert outlier.band_id == count
        assert outlier.value == 100.0
        assert outlier.severity == severity
        assert outlier.z_score > 2.0

    def test_needs_three_values(self):
        assert detect_series_outliers("throughput", [1, 2], [10.0, 1000.0]) == []

    def test_constant_series(self):
        assert detect_series_outliers("throughput", [1, 2, 3], [5.0, 5.0, 5.0]) == []

    def test_ordinary_spread_is_not_flagged(self):
        values = [100.0, 110.0, 95.0, 105.0, 98.0]
        assert detect_series_outliers("latency_p95", [1, 2, 3, 4, 5], values) == []


class TestDetectOutliers:
    """Tests for detect_outliers over band metrics."""

    def test_tags_metric_names(self):
        """Latency and error-rate spikes are reported under their metric name."""
        bands = [make_band(i, 100.0, p95_ms=10.0) for i in range(1, 6)]
        bands.append(make_band(6, 100.0, p95_ms=500.0, error_rate=40.0))

        outliers = detect_outliers(bands)

        assert {(o.metric, o.band_id) for o in outliers} == {
            ("latency_p95", 6),
            ("error_rate", 6),
        }

    def test_short_run_has_no_outliers(self):
        assert detect_outliers([make_band(1, 10.0), make_band(2, 1000.0)]) == []
