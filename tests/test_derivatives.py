"""Tests for marginal-gain and inflection analysis."""

import pytest

from pgscale.analyst.derivatives import calculate_marginal_gains, detect_inflection_points
from tests.factories import make_band, make_series


class TestCalculateMarginalGains:
    """Tests for calculate_marginal_gains."""

    def test_first_differences(self):
        """Gains are computed between consecutive bands."""
        bands = make_series([100.0, 200.0, 250.0, 260.0])

        gains = calculate_marginal_gains(bands)

        assert [(g.from_band, g.to_band) for g in gains] == [(1, 2), (2, 3), (3, 4)]
        assert [g.delta_tps for g in gains] == [100.0, 50.0, 10.0]
        assert [g.tps_per_added_worker for g in gains] == [100.0, 50.0, 10.0]
        assert [g.tps_per_added_connection for g in gains] == [50.0, 25.0, 5.0]
        assert all(g.delta_workers == 1 and g.delta_connections == 2 for g in gains)

    def test_unchanged_dimension_gives_zero_per_unit_gain(self):
        """No division by zero when a dimension is held constant."""
        bands = [
            make_band(1, 100.0, workers=4, connections=2),
            make_band(2, 150.0, workers=4, connections=4),
        ]

        (gain,) = calculate_marginal_gains(bands)

        assert gain.tps_per_added_worker == 0.0
        assert gain.tps_per_added_connection == 25.0

    def test_latency_and_efficiency_change(self):
        bands = [
            make_band(1, 100.0, latency_ms=10.0),
            make_band(2, 150.0, latency_ms=14.0),
        ]

        (gain,) = calculate_marginal_gains(bands)

        assert gain.latency_change_ms == pytest.approx(4.0)
        assert gain.efficiency_change == pytest.approx(50.0 - 100.0)

    def test_single_band(self):
        assert calculate_marginal_gains(make_series([100.0])) == []


class TestDetectInflectionPoints:
    """Tests for detect_inflection_points."""

    def test_deceleration_attributed_to_later_band(self):
        """Shrinking gains produce high-significance decelerations."""
        gains = calculate_marginal_gains(make_series([100.0, 200.0, 250.0, 260.0]))

        points = detect_inflection_points(gains)

        assert [(p.band_id, p.kind, p.significance) for p in points] == [
            (3, "deceleration", "high"),
            (4, "deceleration", "high"),
        ]
        assert points[0].magnitude == pytest.approx(-50.0)
        assert "deceleration" in points[0].description

    def test_acceleration(self):
        gains = calculate_marginal_gains(make_series([100.0, 110.0, 140.0]))

        (point,) = detect_inflection_points(gains)

        assert point.kind == "acceleration"
        assert point.significance == "high"

    @pytest.mark.parametrize(
        ("series", "expected"),
        [
            ([100.0, 110.0, 127.0], "medium"),
            ([100.0, 110.0, 122.0], "low"),
        ],
    )
    def test_tps_significance_levels(self, series, expected):
        """Second differences of 7 and 2 map to medium and low."""
        (point,) = detect_inflection_points(calculate_marginal_gains(make_series(series)))
        assert point.significance == expected

    def test_threshold_is_exclusive(self):
        """A second difference of exactly 1 TPS is not an inflection."""
        gains = calculate_marginal_gains(make_series([100.0, 110.0, 121.0]))
        assert detect_inflection_points(gains) == []

    def test_linear_growth_has_no_inflections(self):
        gains = calculate_marginal_gains(make_series([100.0, 200.0, 300.0, 400.0]))
        assert detect_inflection_points(gains) == []

    def test_latency_spike(self):
        """A latency jump of more than 20 ms in the second difference is high."""
        bands = [
            make_band(1, 100.0, latency_ms=10.0),
            make_band(2, 200.0, latency_ms=12.0),
            make_band(3, 300.0, latency_ms=40.0),
        ]

        (point,) = detect_inflection_points(calculate_marginal_gains(bands))

        assert point.band_id == 3
        assert point.kind == "latency_spike"
        assert point.significance == "high"
        assert point.magnitude == pytest.approx(26.0)

    def test_latency_improvement(self):
        bands = [
            make_band(1, 100.0, latency_ms=20.0),
            make_band(2, 200.0, latency_ms=30.0),
            make_band(3, 300.0, latency_ms=31.0),
        ]

        (point,) = detect_inflection_points(calculate_marginal_gains(bands))

        assert point.kind == "latency_improvement"
        assert point.significance == "medium"
