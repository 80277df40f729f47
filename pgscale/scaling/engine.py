"""Scaling engine: drives the band sequence and finalizes the result.

The engine owns the run state. Bands execute strictly one after another,
with a cooldown between them (none after the last). Completed bands are
appended under a lock, and get_results() / get_progress() hand out
immutable snapshots so a concurrent progress reporter never sees a torn
list.

Run outcomes:
    - all bands complete               -> finalized result
    - cancel token set between bands   -> finalized over completed bands
    - cancel token set mid-band        -> band discarded, finalized over completed bands
    - early-termination heuristic hit  -> finalized over completed bands
    - BandExecutionError               -> propagated, no result

Dependencies:
    - pgscale.scaling.sequence: band generation
    - pgscale.scaling.executor: per-band state machine
    - pgscale.analyst.analyzer: AnalyticsEngine
    - pgscale.analyst.selector: insights and optimal configuration
    - pgscale.common.persistence: optional per-band JSONL log
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime

from pgscale.analyst.analysis_models import AnalysisReport
from pgscale.analyst.analyzer import AnalyticsEngine
from pgscale.analyst.errors import StatisticalError
from pgscale.analyst.selector import select_insights, select_optimal
from pgscale.common.config import ProgressiveConfig, Settings
from pgscale.common.logging import generate_id, get_logger, set_run_id
from pgscale.common.models import (
    BandCompleteCallback,
    BandMetrics,
    ProgressInfo,
    ScalingBand,
    ScalingResult,
)
from pgscale.common.persistence import append_jsonl
from pgscale.scaling.errors import BandExecutionError, ScalingCancelledError
from pgscale.scaling.executor import BandExecutor, TargetFactory, Workload
from pgscale.scaling.sequence import generate_sequence

logger = get_logger("scaling.engine")


class ScalingEngine:
    """Runs a progressive scaling test for one workload."""

    ERROR_RATE_LIMIT = 10.0
    ERROR_RATE_WINDOW = 3
    MIN_HEALTH_SCORE = 0.5
    MAX_TPS_DROP = 0.5

    def __init__(
        self,
        config: ProgressiveConfig,
        workload: Workload,
        target_factory: TargetFactory | None = None,
        workload_name: str = "",
        on_band_complete: BandCompleteCallback | None = None,
        analytics: AnalyticsEngine | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.workload = workload
        self.workload_name = workload_name or type(workload).__name__
        self.on_band_complete = on_band_complete
        self.analytics = analytics or AnalyticsEngine()
        self.executor = BandExecutor(workload, config, target_factory=target_factory, clock=clock)
        self._clock = clock

        self._lock = threading.Lock()
        self._bands: list[BandMetrics] = []
        self._sequence: list[ScalingBand] = []
        self._running = False
        self._current_band = 0
        self._band_started = 0.0
        self._result: ScalingResult | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        workload: Workload,
        target_factory: TargetFactory | None = None,
        workload_name: str = "",
    ) -> ScalingEngine:
        return cls(
            settings.progressive,
            workload,
            target_factory=target_factory,
            workload_name=workload_name,
        )

    @property
    def result(self) -> ScalingResult | None:
        """The finalized result of the last run, if any."""
        return self._result

    def plan(self) -> list[ScalingBand]:
        """Generate the band sequence for the configured strategy.

        Raises:
            ConfigurationError: On an invalid strategy or bounds
        """
        cfg = self.config
        return generate_sequence(
            cfg.strategy,
            cfg.min_workers,
            cfg.max_workers,
            cfg.min_connections,
            cfg.max_connections,
            step_workers=cfg.step_workers,
            step_connections=cfg.step_connections,
            bands=cfg.bands,
        )

    def get_results(self) -> tuple[BandMetrics, ...]:
        """Snapshot of the bands completed so far."""
        with self._lock:
            return tuple(self._bands)

    def get_progress(self) -> ProgressInfo:
        with self._lock:
            total = len(self._sequence)
            completed = len(self._bands)
            running = self._running
            current = self._current_band
            band_started = self._band_started

        per_band = self.config.warmup_duration + self.config.test_duration
        remaining_bands = max(0, total - completed)
        remaining = remaining_bands * per_band + max(0, remaining_bands - 1) * (
            self.config.cooldown_duration
        )
        if running and current > completed:
            # Credit time already spent in the current band.
            remaining -= min(per_band, max(0.0, self._clock() - band_started))

        return ProgressInfo(
            running=running,
            current_band=current,
            total_bands=total,
            completed_bands=completed,
            estimated_remaining_seconds=max(0.0, remaining) if running else 0.0,
        )

    def estimate_total_duration(self) -> float:
        """Seconds the planned sequence should take, cooldowns included."""
        count = len(self._sequence) or len(self.plan())
        per_band = self.config.warmup_duration + self.config.test_duration
        return count * per_band + max(0, count - 1) * self.config.cooldown_duration

    async def run(self, cancel_token: asyncio.Event | None = None) -> ScalingResult:
        """Execute every band and return the finalized result.

        Args:
            cancel_token: Optional event; setting it stops the run and
                finalizes over the bands completed so far

        Returns:
            Finalized ScalingResult

        Raises:
            ConfigurationError: Before any band runs, on invalid settings
            BandExecutionError: When a band fails; completed bands remain
                available through get_results()
        """
        sequence = self.plan()
        run_id = generate_id()
        set_run_id(run_id)

        with self._lock:
            self._sequence = sequence
            self._bands = []
            self._running = True
            self._current_band = 0
        self._result = None

        test_start = datetime.now(tz=UTC)
        started = self._clock()
        cancelled = False
        termination_reason: str | None = None

        logger.info(
            "Starting progressive scaling run",
            {
                "workload": self.workload_name,
                "strategy": self.config.strategy,
                "bands": len(sequence),
                "estimated_seconds": self.estimate_total_duration(),
            },
        )

        try:
            for index, band in enumerate(sequence):
                band_id = index + 1
                if cancel_token is not None and cancel_token.is_set():
                    cancelled = True
                    logger.info("Run cancelled between bands", {"next_band": band_id})
                    break

                with self._lock:
                    self._current_band = band_id
                    self._band_started = self._clock()

                try:
                    metrics = await self.executor.execute(band_id, band, cancel_token)
                except ScalingCancelledError:
                    cancelled = True
                    logger.info("Run cancelled mid-band, band discarded", {"band_id": band_id})
                    break
                except BandExecutionError:
                    logger.error(
                        "Aborting run after band failure",
                        {"band_id": band_id, "completed_bands": len(self._bands)},
                    )
                    raise

                self._record_band(metrics)

                if self.config.early_termination:
                    termination_reason = self._check_early_termination()
                    if termination_reason:
                        logger.warning(
                            "Early termination triggered",
                            {"band_id": band_id, "reason": termination_reason},
                        )
                        break

                if index < len(sequence) - 1 and self.config.cooldown_duration > 0:
                    if await self._cooldown(cancel_token):
                        cancelled = True
                        logger.info("Run cancelled during cooldown", {"after_band": band_id})
                        break
        finally:
            with self._lock:
                self._running = False

        result = self._finalize(
            test_start=test_start,
            elapsed=self._clock() - started,
            run_id=run_id,
            cancelled=cancelled,
            termination_reason=termination_reason,
        )
        set_run_id(None)
        return result

    async def _cooldown(self, cancel_token: asyncio.Event | None) -> bool:
        """Sleep for the cooldown; returns True when cancelled meanwhile."""
        if cancel_token is None:
            await asyncio.sleep(self.config.cooldown_duration)
            return False
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(cancel_token.wait(), timeout=self.config.cooldown_duration)
        return cancel_token.is_set()

    def _record_band(self, metrics: BandMetrics) -> None:
        with self._lock:
            self._bands.append(metrics)

        if self.config.results_path:
            append_jsonl(self.config.results_path, metrics)

        if self.on_band_complete is not None:
            self.on_band_complete(metrics)

    def _check_early_termination(self) -> str | None:
        """Reason to stop after the latest band, or None to continue."""
        bands = self.get_results()
        latest = bands[-1]

        window = bands[-self.ERROR_RATE_WINDOW :]
        avg_error_rate = sum(b.error_rate for b in window) / len(window)
        if avg_error_rate > self.ERROR_RATE_LIMIT:
            return f"rolling error rate {avg_error_rate:.2f}% exceeds {self.ERROR_RATE_LIMIT:.0f}%"

        if (
            latest.health is not None
            and latest.health.sample_count > 0
            and latest.health.health_score < self.MIN_HEALTH_SCORE
        ):
            score = latest.health.health_score
            return f"band health score {score:.2f} below {self.MIN_HEALTH_SCORE}"

        if len(bands) >= 2:
            previous = bands[-2]
            if previous.total_tps > 0:
                drop = (previous.total_tps - latest.total_tps) / previous.total_tps
                if drop > self.MAX_TPS_DROP:
                    return f"throughput dropped {drop * 100:.1f}% from band {previous.band_id}"

        return None

    def _finalize(
        self,
        test_start: datetime,
        elapsed: float,
        run_id: str,
        cancelled: bool,
        termination_reason: str | None,
    ) -> ScalingResult:
        bands = self.get_results()
        analysis = AnalysisReport()
        analysis_error: str | None = None

        if self.config.enable_analysis:
            try:
                analysis = self.analytics.analyze(bands)
            except StatisticalError as e:
                analysis_error = str(e)
                logger.warning(
                    "Analysis skipped",
                    {"bands": len(bands), "error_type": type(e).__name__, "error": str(e)},
                )

        result = ScalingResult(
            run_id=run_id,
            test_start=test_start,
            test_end=datetime.now(tz=UTC),
            total_duration_seconds=max(0.0, elapsed),
            workload_name=self.workload_name,
            strategy=self.config.strategy,
            bands=bands,
            analysis=analysis,
            analysis_error=analysis_error,
            insights=select_insights(bands),
            optimal_config=select_optimal(bands),
            cancelled=cancelled,
            terminated_early=termination_reason is not None,
            termination_reason=termination_reason,
        )
        self._result = result

        logger.info(
            "Progressive scaling run finalized",
            {
                "bands": len(bands),
                "cancelled": cancelled,
                "terminated_early": result.terminated_early,
                "optimal_band": result.optimal_config.band_id if result.optimal_config else None,
                "duration_seconds": round(result.total_duration_seconds, 3),
            },
        )
        return result
