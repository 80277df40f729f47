"""Tests for operating-point selection."""

import pytest

from pgscale.analyst.selector import (
    EFFICIENT_REASONING,
    PEAK_REASONING,
    efficiency_score,
    find_diminishing_returns,
    find_overload_point,
    find_sweet_spot,
    select_insights,
    select_optimal,
    sweet_spot_score,
)
from tests.factories import make_band


class TestSelectOptimal:
    """Tests for select_optimal."""

    def test_prefers_efficient_band_near_peak(self):
        """The most efficient band wins when it reaches 80% of peak TPS."""
        bands = [
            make_band(1, 100.0, workers=1, latency_ms=4.0),
            make_band(2, 110.0, workers=2, latency_ms=9.0),
        ]

        optimal = select_optimal(bands)

        assert optimal.band_id == 1
        assert optimal.workers == 1
        assert optimal.expected_tps == 100.0
        assert optimal.expected_latency_ms == 4.0
        assert optimal.reasoning == EFFICIENT_REASONING

    def test_falls_back_to_peak(self):
        """An efficient band far below peak loses to the peak band."""
        bands = [
            make_band(1, 100.0, workers=1),
            make_band(2, 180.0, workers=2),
            make_band(3, 200.0, workers=4),
        ]

        optimal = select_optimal(bands)

        assert optimal.band_id == 3
        assert optimal.reasoning == PEAK_REASONING

    def test_high_latency_counts_against_efficiency(self):
        """A slow band with better raw TPS per worker loses to a fast one."""
        bands = [
            make_band(1, 1000.0, workers=10, latency_ms=500.0),
            make_band(2, 1100.0, workers=20, latency_ms=10.0),
        ]

        optimal = select_optimal(bands)

        assert optimal.band_id == 2
        assert optimal.expected_latency_ms == 10.0
        assert optimal.reasoning == EFFICIENT_REASONING

    def test_reports_worker_efficiency(self):
        bands = [make_band(1, 100.0, workers=4)]

        optimal = select_optimal(bands)

        assert optimal.efficiency == pytest.approx(bands[0].worker_efficiency)
        assert optimal.efficiency == pytest.approx(25.0)

    def test_no_bands(self):
        assert select_optimal([]) is None

    def test_single_band(self):
        assert select_optimal([make_band(1, 50.0)]).band_id == 1


class TestEfficiencyScore:
    """Tests for efficiency_score."""

    def test_no_penalty_at_or_below_100_ms(self):
        assert efficiency_score(make_band(1, 100.0, workers=1, latency_ms=100.0)) == 100.0
        assert efficiency_score(make_band(1, 100.0, workers=1, latency_ms=5.0)) == 100.0

    def test_penalty_above_100_ms(self):
        band = make_band(1, 1000.0, workers=10, latency_ms=500.0)

        assert efficiency_score(band) == pytest.approx(20.0)


class TestInsights:
    """Tests for the sweet spot, diminishing returns and overload finders."""

    def test_sweet_spot_score(self):
        band = make_band(1, 50.0, workers=1, p95_ms=100.0)
        assert sweet_spot_score(band) == pytest.approx(25.0)

    def test_sweet_spot_penalizes_latency(self):
        bands = [
            make_band(1, 100.0, workers=1, p95_ms=300.0),
            make_band(2, 160.0, workers=2, p95_ms=10.0),
        ]

        assert find_sweet_spot(bands).band_id == 2

    def test_diminishing_returns_per_connection(self):
        """Band 3 adds 10 TPS for 2 connections, below 20 per connection."""
        bands = [
            make_band(1, 100.0),
            make_band(2, 200.0),
            make_band(3, 210.0),
        ]

        assert find_diminishing_returns(bands).band_id == 3

    def test_diminishing_returns_per_worker_when_connections_fixed(self):
        bands = [
            make_band(1, 100.0, workers=1, connections=4),
            make_band(2, 200.0, workers=2, connections=4),
            make_band(3, 205.0, workers=3, connections=4),
        ]

        assert find_diminishing_returns(bands).band_id == 3

    def test_no_diminishing_returns_on_strong_growth(self):
        bands = [make_band(i, 100.0 * i) for i in range(1, 5)]

        assert find_diminishing_returns(bands) is None

    def test_second_band_is_never_diminishing(self):
        bands = [make_band(1, 100.0), make_band(2, 101.0)]

        assert find_diminishing_returns(bands) is None

    def test_overload_point(self):
        bands = [make_band(1, 100.0), make_band(2, 200.0), make_band(3, 150.0)]

        assert find_overload_point(bands).band_id == 3

    def test_select_insights(self):
        bands = [
            make_band(1, 100.0),
            make_band(2, 200.0),
            make_band(3, 205.0),
            make_band(4, 150.0),
        ]

        insights = select_insights(bands)

        assert insights.sweet_spot_band == 1
        assert insights.diminishing_returns_band == 3
        assert insights.overload_band == 4

    def test_select_insights_without_bands(self):
        insights = select_insights([])

        assert insights.sweet_spot_band is None
        assert insights.diminishing_returns_band is None
        assert insights.overload_band is None
