"""Worker pool that drives a transaction callable for one band.

TransactionWorkload implements the Workload contract: it spawns one task
per configured worker and bounds in-flight transactions with a semaphore
sized to the band's connection count.

Dependencies:
    - pgscale.scaling.executor: BandRunConfig
    - pgscale.scaling.sink: MetricsSink, classify_query
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from pgscale.common.logging import get_logger
from pgscale.scaling.executor import BandRunConfig
from pgscale.scaling.sink import MetricsSink, classify_query

logger = get_logger("scaling.workers")

# A transaction receives (target, worker_id) and may return the SQL it ran.
Transaction = Callable[[Any, int], Awaitable[Iterable[str] | None]]


class TransactionWorkload:
    """Runs `transaction` in a loop on every worker until told to stop."""

    def __init__(
        self,
        transaction: Transaction,
        think_time: float = 0.0,
        setup_hook: Callable[[Any, Any], Awaitable[None]] | None = None,
        cleanup_hook: Callable[[Any, Any], Awaitable[None]] | None = None,
    ):
        self.transaction = transaction
        self.think_time = think_time
        self._setup_hook = setup_hook
        self._cleanup_hook = cleanup_hook

    async def setup(self, target: Any, config: Any) -> None:
        if self._setup_hook is not None:
            await self._setup_hook(target, config)

    async def cleanup(self, target: Any, config: Any) -> None:
        if self._cleanup_hook is not None:
            await self._cleanup_hook(target, config)

    async def _run_one(
        self,
        target: Any,
        worker_id: int,
        semaphore: asyncio.Semaphore,
        sink: MetricsSink,
    ) -> None:
        started = time.perf_counter_ns()
        async with semaphore:
            try:
                statements = await self.transaction(target, worker_id)
            except Exception as e:
                sink.record_transaction(False, time.perf_counter_ns() - started)
                sink.record_error(type(e).__name__)
                return
        sink.record_transaction(True, time.perf_counter_ns() - started)
        for sql in statements or ():
            sink.record_query(classify_query(sql))

    async def _worker(
        self,
        target: Any,
        worker_id: int,
        semaphore: asyncio.Semaphore,
        sink: MetricsSink,
        stop_event: asyncio.Event,
    ) -> None:
        while not stop_event.is_set():
            await self._run_one(target, worker_id, semaphore, sink)
            # Yield so instant transactions cannot starve the event loop.
            await asyncio.sleep(self.think_time)

    async def run(self, target: Any, config: BandRunConfig, sink: MetricsSink) -> None:
        """Run `config.workers` workers against at most `config.connections` slots."""
        semaphore = asyncio.Semaphore(config.connections)

        results = await asyncio.gather(
            *[
                self._worker(target, worker_id, semaphore, sink, config.stop_event)
                for worker_id in range(config.workers)
            ],
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        for worker_id, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error(
                    "Worker failed with exception",
                    {
                        "band_id": config.band_id,
                        "worker_id": worker_id,
                        "error_type": type(result).__name__,
                        "error": str(result),
                    },
                )
        if failures and len(failures) == len(results):
            raise failures[0]
