"""Band executor: runs one band through warmup and measurement.

State machine:

    IDLE -> WARMING (when warmup > 0) -> MEASURING -> COMPLETED
    WARMING | MEASURING -> FAILED     workload error, early exit in warmup, deadline
    WARMING | MEASURING -> CANCELLED  cancellation token fired mid-band

The workload runs as a task against a deadline of warmup + measurement +
deadline_margin. After warmup a counts-only baseline is captured so the
measured window reports deltas, and only latencies recorded after the
baseline position describe the band. Once the window closes the workload is
asked to stop, given shutdown_grace seconds, then cancelled.

Dependencies:
    - pgscale.scaling.sink: MetricsSink shared with the workload
    - pgscale.scaling.sampler: interval samples and band health
    - pgscale.scaling.band_metrics: calculate_band_metrics
    - pgscale.common.observability: Logfire span per band
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from pgscale.common import observability
from pgscale.common.config import ProgressiveConfig
from pgscale.common.logging import get_logger, set_band_id
from pgscale.common.models import BandMetrics, ScalingBand
from pgscale.scaling.band_metrics import calculate_band_metrics
from pgscale.scaling.errors import BandExecutionError, ScalingCancelledError
from pgscale.scaling.sampler import IntervalSample, IntervalSampler, calculate_band_health
from pgscale.scaling.sink import MetricsSink

logger = get_logger("scaling.executor")


class BandState(str, Enum):
    IDLE = "idle"
    WARMING = "warming"
    MEASURING = "measuring"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class BandRunConfig:
    """Per-band settings handed to Workload.run.

    The workload should keep issuing transactions until stop_event is set.
    """

    band_id: int
    workers: int
    connections: int
    warmup_seconds: float
    duration_seconds: float
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)


class Workload(Protocol):
    """External workload contract. The executor only calls run."""

    async def setup(self, target: Any, config: Any) -> None: ...

    async def run(self, target: Any, config: BandRunConfig, sink: MetricsSink) -> None: ...

    async def cleanup(self, target: Any, config: Any) -> None: ...


TargetFactory = Callable[[ScalingBand], AbstractAsyncContextManager[Any]]


@contextlib.asynccontextmanager
async def no_target(band: ScalingBand) -> AsyncIterator[None]:
    """Default target factory: nothing to provision."""
    yield None


class _Phase(str, Enum):
    ELAPSED = "elapsed"
    WORKLOAD_DONE = "workload_done"
    CANCELLED = "cancelled"
    DEADLINE = "deadline"


class BandExecutor:
    """Executes single bands against a workload."""

    def __init__(
        self,
        workload: Workload,
        config: ProgressiveConfig,
        target_factory: TargetFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.workload = workload
        self.config = config
        self.target_factory = target_factory or no_target
        self._clock = clock
        self.state = BandState.IDLE
        self.samples: list[IntervalSample] = []

    def _transition(self, band_id: int, state: BandState) -> None:
        previous = self.state
        self.state = state
        logger.debug(
            "Band state change",
            {"band_id": band_id, "from": previous.value, "to": state.value},
        )

    def _fail(
        self, band_id: int, message: str, cause: BaseException | None = None
    ) -> BandExecutionError:
        failed_in = self.state.value
        self._transition(band_id, BandState.FAILED)
        logger.error(
            "Band failed",
            {
                "band_id": band_id,
                "phase": failed_in,
                "error": message,
                "error_type": type(cause).__name__ if cause else None,
            },
        )
        return BandExecutionError(
            f"band {band_id} failed during {failed_in}: {message}",
            band_id=band_id,
            state=failed_in,
        )

    async def _wait_phase(
        self,
        task: asyncio.Task,
        seconds: float,
        deadline: float,
        cancel_token: asyncio.Event | None,
    ) -> _Phase:
        loop = asyncio.get_running_loop()
        timeout = max(0.0, min(seconds, deadline - loop.time()))

        waiters: set[asyncio.Future] = {task}
        cancel_waiter = None
        if cancel_token is not None:
            cancel_waiter = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

        if task in done:
            return _Phase.WORKLOAD_DONE
        if cancel_token is not None and cancel_token.is_set():
            return _Phase.CANCELLED
        if loop.time() >= deadline:
            return _Phase.DEADLINE
        return _Phase.ELAPSED

    def _workload_error(self, task: asyncio.Task) -> BaseException | None:
        if task.cancelled():
            return asyncio.CancelledError("workload task was cancelled")
        return task.exception()

    async def _stop_workload(
        self, task: asyncio.Task, stop_event: asyncio.Event, band_id: int
    ) -> None:
        stop_event.set()
        if not task.done():
            done, _ = await asyncio.wait({task}, timeout=self.config.shutdown_grace)
            if not done:
                logger.warning(
                    "Workload did not stop within grace period, cancelling",
                    {"band_id": band_id, "grace_seconds": self.config.shutdown_grace},
                )
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                return
        # Only a completed window makes a late workload error worth reporting.
        if self.state is BandState.MEASURING and not task.cancelled() and task.exception():
            error = task.exception()
            logger.warning(
                "Workload raised while stopping",
                {"band_id": band_id, "error_type": type(error).__name__, "error": str(error)},
            )

    async def execute(
        self,
        band_id: int,
        band: ScalingBand,
        cancel_token: asyncio.Event | None = None,
    ) -> BandMetrics:
        """Run one band and return its metrics.

        Args:
            band_id: 1-based band identifier
            band: Concurrency level to run
            cancel_token: Optional event; when set mid-band the band is
                abandoned and ScalingCancelledError is raised

        Returns:
            BandMetrics for the measurement window

        Raises:
            BandExecutionError: Workload error, early exit during warmup,
                or deadline expiry
            ScalingCancelledError: cancel_token fired during the band
        """
        self.state = BandState.IDLE
        self.samples = []
        set_band_id(band_id)
        try:
            with observability.span(
                "band.execute",
                band_id=band_id,
                workers=band.workers,
                connections=band.connections,
            ):
                return await self._execute(band_id, band, cancel_token)
        finally:
            set_band_id(None)

    async def _execute(
        self, band_id: int, band: ScalingBand, cancel_token: asyncio.Event | None
    ) -> BandMetrics:
        cfg = self.config
        loop = asyncio.get_running_loop()
        sink = MetricsSink(max_latency_samples=cfg.max_latency_samples)
        run_config = BandRunConfig(
            band_id=band_id,
            workers=band.workers,
            connections=band.connections,
            warmup_seconds=cfg.warmup_duration,
            duration_seconds=cfg.test_duration,
        )

        logger.info(
            "Starting band",
            {
                "band_id": band_id,
                "workers": band.workers,
                "connections": band.connections,
                "warmup_seconds": cfg.warmup_duration,
                "duration_seconds": cfg.test_duration,
            },
        )

        async with self.target_factory(band) as target:
            deadline = loop.time() + cfg.warmup_duration + cfg.test_duration + cfg.deadline_margin
            task = asyncio.create_task(self.workload.run(target, run_config, sink))
            sampler_stop = asyncio.Event()
            sampler_task: asyncio.Task | None = None
            try:
                if cfg.warmup_duration > 0:
                    self._transition(band_id, BandState.WARMING)
                    phase = await self._wait_phase(task, cfg.warmup_duration, deadline, cancel_token)
                    self._check_phase(band_id, task, phase, during_warmup=True)

                baseline = sink.counts()

                self._transition(band_id, BandState.MEASURING)
                start_time = datetime.now(tz=UTC)
                started = self._clock()
                sampler = IntervalSampler(sink, cfg.sample_interval, clock=self._clock)
                sampler_task = asyncio.create_task(sampler.run(sampler_stop))

                phase = await self._wait_phase(task, cfg.test_duration, deadline, cancel_token)
                self._check_phase(band_id, task, phase, during_warmup=False)

                elapsed = self._clock() - started
                end_time = datetime.now(tz=UTC)
                window = sink.snapshot(since=baseline.latency_index).delta(baseline)
            finally:
                sampler_stop.set()
                if sampler_task is not None:
                    await sampler_task
                    self.samples = list(sampler.samples)
                await self._stop_workload(task, run_config.stop_event, band_id)

        metrics = calculate_band_metrics(
            band_id=band_id,
            workers=band.workers,
            connections=band.connections,
            snapshot=window,
            duration_seconds=elapsed,
            start_time=start_time,
            end_time=end_time,
            health=calculate_band_health(self.samples),
        )
        self._transition(band_id, BandState.COMPLETED)
        logger.info(
            "Band completed",
            {
                "band_id": band_id,
                "tps": round(metrics.total_tps, 2),
                "p95_ms": round(metrics.p95_latency_ms, 3),
                "error_rate": round(metrics.error_rate, 3),
                "duration_seconds": round(metrics.duration_seconds, 3),
            },
        )
        return metrics

    def _check_phase(
        self, band_id: int, task: asyncio.Task, phase: _Phase, during_warmup: bool
    ) -> None:
        if phase is _Phase.ELAPSED:
            return
        if phase is _Phase.CANCELLED:
            self._transition(band_id, BandState.CANCELLED)
            logger.warning("Band cancelled", {"band_id": band_id})
            raise ScalingCancelledError(f"band {band_id} cancelled", band_id=band_id)
        if phase is _Phase.DEADLINE:
            raise self._fail(band_id, "deadline exceeded")

        error = self._workload_error(task)
        if error is not None:
            raise self._fail(band_id, str(error) or type(error).__name__, error) from error
        if during_warmup:
            raise self._fail(band_id, "workload finished before warmup completed")
        # Clean completion while measuring closes the window early.
        logger.info("Workload finished before measurement window elapsed", {"band_id": band_id})
