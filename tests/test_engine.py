"""Tests for the scaling engine orchestrator."""

import asyncio
from pathlib import Path

import pytest
from pydantic import ValidationError

from pgscale.common.config import ConfigurationError, ProgressiveConfig, Settings
from pgscale.common.models import BandMetrics
from pgscale.common.persistence import read_jsonl
from pgscale.scaling.engine import ScalingEngine
from pgscale.scaling.errors import BandExecutionError
from tests.workloads import SteadyWorkload


def fast_config(**overrides) -> ProgressiveConfig:
    values = {
        "strategy": "synchronized",
        "min_workers": 1,
        "max_workers": 3,
        "min_connections": 1,
        "max_connections": 3,
        "warmup_duration": 0,
        "test_duration": 0.06,
        "cooldown_duration": 0,
        "sample_interval": 0.02,
        "shutdown_grace": 0.2,
        "deadline_margin": 1.0,
    }
    values.update(overrides)
    return ProgressiveConfig(**values)


class FailsOnBand(SteadyWorkload):
    def __init__(self, band_id: int) -> None:
        super().__init__()
        self.fail_band = band_id

    async def run(self, target, config, sink) -> None:
        if config.band_id == self.fail_band:
            await asyncio.sleep(0.01)
            raise ConnectionError("server closed the connection unexpectedly")
        await super().run(target, config, sink)


class TestScalingEngineRun:
    """Tests for ScalingEngine.run."""

    @pytest.mark.asyncio
    async def test_runs_all_bands_and_finalizes(self) -> None:
        engine = ScalingEngine(fast_config(), SteadyWorkload(), workload_name="tpcb")

        result = await engine.run()

        assert [b.band_id for b in result.bands] == [1, 2, 3]
        assert [(b.workers, b.connections) for b in result.bands] == [(1, 1), (2, 2), (3, 3)]
        assert result.workload_name == "tpcb"
        assert result.strategy == "synchronized"
        assert result.analysis.band_count == 3
        assert result.analysis.recommendations
        assert result.analysis_error is None
        assert result.optimal_config is not None
        assert result.cancelled is False
        assert result.test_end >= result.test_start
        assert engine.result is result

    @pytest.mark.asyncio
    async def test_result_is_immutable(self) -> None:
        engine = ScalingEngine(fast_config(max_workers=2, max_connections=2), SteadyWorkload())

        result = await engine.run()

        with pytest.raises(ValidationError):
            result.workload_name = "changed"

    @pytest.mark.asyncio
    async def test_cancel_between_bands_keeps_completed_bands(self) -> None:
        """Cancelling after band 2 of 5 finalizes over exactly two bands."""
        token = asyncio.Event()

        def on_band(metrics: BandMetrics) -> None:
            if metrics.band_id == 2:
                token.set()

        config = fast_config(max_workers=5, max_connections=5, cooldown_duration=0.05)
        engine = ScalingEngine(config, SteadyWorkload(), on_band_complete=on_band)

        result = await asyncio.wait_for(engine.run(token), timeout=5.0)

        assert len(result.bands) == 2
        assert result.cancelled is True
        assert result.analysis.band_count == 2
        assert len(result.analysis.marginal_gains) == 1
        assert result.analysis.recommendations
        assert result.analysis_error is None

    @pytest.mark.asyncio
    async def test_cancel_during_long_cooldown_returns_promptly(self) -> None:
        """Setting the token mid-cooldown ends the run without waiting out the cooldown."""
        token = asyncio.Event()
        config = fast_config(max_workers=3, max_connections=3, cooldown_duration=5.0)
        engine = ScalingEngine(config, SteadyWorkload())

        async def cancel_after_first_band() -> None:
            while not engine.get_results():
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.05)
            token.set()

        canceller = asyncio.create_task(cancel_after_first_band())
        result = await asyncio.wait_for(engine.run(token), timeout=3.0)
        await canceller

        assert len(result.bands) == 1
        assert result.cancelled is True

    @pytest.mark.asyncio
    async def test_cancel_without_cooldown_checks_token_between_bands(self) -> None:
        token = asyncio.Event()

        def on_band(metrics: BandMetrics) -> None:
            if metrics.band_id == 2:
                token.set()

        config = fast_config(max_workers=5, max_connections=5)
        engine = ScalingEngine(config, SteadyWorkload(), on_band_complete=on_band)

        result = await engine.run(token)

        assert len(result.bands) == 2

    @pytest.mark.asyncio
    async def test_cancel_before_start_yields_empty_result(self) -> None:
        """Zero completed bands finalize without analysis and without crashing."""
        token = asyncio.Event()
        token.set()
        engine = ScalingEngine(fast_config(), SteadyWorkload())

        result = await engine.run(token)

        assert result.bands == ()
        assert result.analysis.is_empty
        assert result.analysis_error is not None
        assert result.optimal_config is None
        assert result.insights.sweet_spot_band is None

    @pytest.mark.asyncio
    async def test_single_band_reports_analysis_error(self) -> None:
        token = asyncio.Event()
        engine = ScalingEngine(
            fast_config(), SteadyWorkload(), on_band_complete=lambda m: token.set()
        )

        result = await engine.run(token)

        assert len(result.bands) == 1
        assert "at least 2" in result.analysis_error
        assert result.optimal_config is not None
        assert result.optimal_config.band_id == 1

    @pytest.mark.asyncio
    async def test_cancel_mid_band_discards_partial_band(self) -> None:
        token = asyncio.Event()
        config = fast_config(max_workers=5, max_connections=5, test_duration=0.3)
        engine = ScalingEngine(config, SteadyWorkload())

        async def cancel_during_band_two() -> None:
            while len(engine.get_results()) < 1:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.1)
            token.set()

        canceller = asyncio.create_task(cancel_during_band_two())
        result = await asyncio.wait_for(engine.run(token), timeout=5.0)
        await canceller

        assert len(result.bands) == 1
        assert result.cancelled is True

    @pytest.mark.asyncio
    async def test_band_failure_aborts_run(self) -> None:
        """A failing band propagates; earlier bands stay readable."""
        engine = ScalingEngine(fast_config(), FailsOnBand(2))

        with pytest.raises(BandExecutionError) as exc_info:
            await engine.run()

        assert exc_info.value.band_id == 2
        assert [b.band_id for b in engine.get_results()] == [1]
        assert engine.result is None
        assert engine.get_progress().running is False

    @pytest.mark.asyncio
    async def test_invalid_bounds_fail_before_any_band(self) -> None:
        workload = SteadyWorkload()
        engine = ScalingEngine(fast_config(min_workers=5, max_workers=2), workload)

        with pytest.raises(ConfigurationError):
            await engine.run()

        assert workload.runs == []

    @pytest.mark.asyncio
    async def test_unknown_strategy_fails_fast(self) -> None:
        engine = ScalingEngine(fast_config(strategy="quadratic"), SteadyWorkload())

        with pytest.raises(ConfigurationError):
            await engine.run()

    @pytest.mark.asyncio
    async def test_analysis_can_be_disabled(self) -> None:
        engine = ScalingEngine(fast_config(enable_analysis=False), SteadyWorkload())

        result = await engine.run()

        assert result.analysis.is_empty
        assert result.analysis_error is None
        assert len(result.bands) == 3

    @pytest.mark.asyncio
    async def test_appends_bands_to_results_file(self, tmp_path: Path) -> None:
        results_path = tmp_path / "bands.jsonl"
        engine = ScalingEngine(fast_config(results_path=str(results_path)), SteadyWorkload())

        result = await engine.run()

        stored = read_jsonl(results_path, BandMetrics)
        assert [b.band_id for b in stored] == [1, 2, 3]
        assert stored[0].total_tps == pytest.approx(result.bands[0].total_tps)


class TestEarlyTermination:
    """Tests for the early-termination heuristics."""

    @pytest.mark.asyncio
    async def test_throughput_drop_stops_run(self) -> None:
        workload = SteadyWorkload(tps_by_band={1: 20, 2: 2, 3: 2})
        engine = ScalingEngine(fast_config(early_termination=True), workload)

        result = await engine.run()

        assert len(result.bands) == 2
        assert result.terminated_early is True
        assert "throughput dropped" in result.termination_reason

    @pytest.mark.asyncio
    async def test_high_error_rate_stops_run(self) -> None:
        workload = SteadyWorkload(errors_by_band={1: 5})
        engine = ScalingEngine(fast_config(early_termination=True), workload)

        result = await engine.run()

        assert len(result.bands) == 1
        assert "error rate" in result.termination_reason

    @pytest.mark.asyncio
    async def test_low_health_score_stops_run(self) -> None:
        """Every interval has p95 above 100 ms, so band 1 scores 0 and the run stops."""
        workload = SteadyWorkload(latency_ns=200_000_000)
        config = fast_config(early_termination=True, sample_interval=0.01)
        engine = ScalingEngine(config, workload)

        result = await engine.run()

        assert len(result.bands) == 1
        assert result.bands[0].health is not None
        assert result.bands[0].health.health_score < 0.5
        assert result.terminated_early is True
        assert "health score" in result.termination_reason

    @pytest.mark.asyncio
    async def test_disabled_by_default(self) -> None:
        workload = SteadyWorkload(tps_by_band={1: 20, 2: 2, 3: 2})
        engine = ScalingEngine(fast_config(), workload)

        result = await engine.run()

        assert len(result.bands) == 3
        assert result.terminated_early is False


class TestProgressAndSnapshots:
    """Tests for get_progress and get_results."""

    @pytest.mark.asyncio
    async def test_progress_during_and_after_run(self) -> None:
        seen = []
        engine: ScalingEngine

        def on_band(metrics: BandMetrics) -> None:
            seen.append(engine.get_progress())

        engine = ScalingEngine(fast_config(), SteadyWorkload(), on_band_complete=on_band)

        await engine.run()

        assert [p.completed_bands for p in seen] == [1, 2, 3]
        assert all(p.running and p.total_bands == 3 for p in seen)
        assert seen[0].estimated_remaining_seconds > 0
        final = engine.get_progress()
        assert final.running is False
        assert final.completed_bands == 3
        assert final.estimated_remaining_seconds == 0.0

    def test_idle_engine_reports_nothing(self) -> None:
        engine = ScalingEngine(fast_config(), SteadyWorkload())

        progress = engine.get_progress()

        assert progress.running is False
        assert progress.total_bands == 0
        assert engine.get_results() == ()

    @pytest.mark.asyncio
    async def test_get_results_returns_snapshot(self) -> None:
        engine = ScalingEngine(fast_config(), SteadyWorkload())

        await engine.run()
        snapshot = engine.get_results()

        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 3

    def test_estimate_total_duration(self) -> None:
        config = fast_config(warmup_duration=10, test_duration=60, cooldown_duration=5)
        engine = ScalingEngine(config, SteadyWorkload())

        assert engine.estimate_total_duration() == pytest.approx(3 * 70 + 2 * 5)

    def test_from_settings(self) -> None:
        settings = Settings(progressive=fast_config(strategy="exponential"))

        engine = ScalingEngine.from_settings(settings, SteadyWorkload(), workload_name="ycsb")

        assert engine.config.strategy == "exponential"
        assert engine.workload_name == "ycsb"
