"""Band sequence generation for progressive scaling.

Each scaling strategy is a pure function from bounds to an ordered list of
ScalingBand values. generate_sequence validates the bounds, dispatches on
the strategy and rejects empty results.

Dependencies:
    - pgscale.common.config: ConfigurationError
    - pgscale.common.models: ScalingBand
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from pgscale.common.config import ConfigurationError
from pgscale.common.models import ScalingBand

DEFAULT_MAX_BANDS = 64
DEFAULT_BALANCED_BANDS = 8
DEFAULT_FIBONACCI_TERMS = 5


class ScalingStrategy(str, Enum):
    LINEAR = "linear"
    BALANCED = "balanced"
    SYNCHRONIZED = "synchronized"
    EXPONENTIAL = "exponential"
    FIBONACCI = "fibonacci"


@dataclass(frozen=True)
class SequenceBounds:
    min_workers: int
    max_workers: int
    min_connections: int
    max_connections: int
    step_workers: int | None = None
    step_connections: int | None = None
    bands: int | None = None


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _linear(b: SequenceBounds) -> list[ScalingBand]:
    max_bands = b.bands or DEFAULT_MAX_BANDS
    step_w = b.step_workers
    step_c = b.step_connections

    if not step_w or not step_c:
        worker_range = b.max_workers - b.min_workers
        conn_range = b.max_connections - b.min_connections
        worker_steps = max(1, int(math.sqrt(max_bands)))
        conn_steps = max(1, max_bands // worker_steps)
        step_w = max(1, worker_range // worker_steps) if worker_range > 0 else 1
        step_c = max(1, conn_range // conn_steps) if conn_range > 0 else 1

    sequence: list[ScalingBand] = []
    for workers in range(b.min_workers, b.max_workers + 1, step_w):
        for connections in range(b.min_connections, b.max_connections + 1, step_c):
            if len(sequence) >= max_bands:
                return sequence
            sequence.append(ScalingBand(workers=workers, connections=connections))
    return sequence


def _balanced(b: SequenceBounds) -> list[ScalingBand]:
    bands = b.bands or DEFAULT_BALANCED_BANDS
    if bands == 1:
        return [ScalingBand(workers=b.max_workers, connections=b.max_connections)]

    worker_range = b.max_workers - b.min_workers
    conn_range = b.max_connections - b.min_connections
    sequence: list[ScalingBand] = []
    for i in range(bands):
        band = ScalingBand(
            workers=_clamp(b.min_workers + i * worker_range // (bands - 1), 1, b.max_workers),
            connections=_clamp(
                b.min_connections + i * conn_range // (bands - 1), 1, b.max_connections
            ),
        )
        # Narrow ranges repeat positions; keep each level once.
        if not sequence or sequence[-1] != band:
            sequence.append(band)
    return sequence


def _synchronized(b: SequenceBounds) -> list[ScalingBand]:
    step = b.step_workers or 1
    return [
        ScalingBand(
            workers=workers,
            connections=_clamp(workers, b.min_connections, b.max_connections),
        )
        for workers in range(b.min_workers, b.max_workers + 1, step)
    ]


def _exponential(b: SequenceBounds) -> list[ScalingBand]:
    workers, connections = b.min_workers, b.min_connections
    sequence = [ScalingBand(workers=workers, connections=connections)]
    while True:
        next_workers = min(workers * 2, b.max_workers)
        next_connections = min(connections * 2, b.max_connections)
        if next_workers == workers and next_connections == connections:
            return sequence
        workers, connections = next_workers, next_connections
        sequence.append(ScalingBand(workers=workers, connections=connections))


def _fibonacci_levels(low: int, high: int, terms: int) -> list[int]:
    """Scale the first `terms` Fibonacci numbers into [low, high].

    Example:
        >>> _fibonacci_levels(1, 10, 5)
        [1, 3, 5, 10]
    """
    fib = [1, 1]
    while len(fib) < terms:
        fib.append(fib[-1] + fib[-2])
    fib = fib[:terms]
    top = fib[-1]

    if top <= 1:
        return sorted({low, high})

    levels: list[int] = []
    for f in fib:
        level = low + round((f - 1) / (top - 1) * (high - low))
        if level not in levels:
            levels.append(level)
    return levels


def _fibonacci(b: SequenceBounds) -> list[ScalingBand]:
    terms = b.bands or DEFAULT_FIBONACCI_TERMS
    return [
        ScalingBand(workers=workers, connections=connections)
        for workers in _fibonacci_levels(b.min_workers, b.max_workers, terms)
        for connections in _fibonacci_levels(b.min_connections, b.max_connections, terms)
    ]


_STRATEGIES: dict[ScalingStrategy, Callable[[SequenceBounds], list[ScalingBand]]] = {
    ScalingStrategy.LINEAR: _linear,
    ScalingStrategy.BALANCED: _balanced,
    ScalingStrategy.SYNCHRONIZED: _synchronized,
    ScalingStrategy.EXPONENTIAL: _exponential,
    ScalingStrategy.FIBONACCI: _fibonacci,
}


def parse_strategy(name: str | ScalingStrategy) -> ScalingStrategy:
    """Resolve a strategy name.

    Raises:
        ConfigurationError: If the name is not a known strategy
    """
    if isinstance(name, ScalingStrategy):
        return name
    try:
        return ScalingStrategy(str(name).strip().lower())
    except ValueError:
        known = ", ".join(s.value for s in ScalingStrategy)
        raise ConfigurationError(
            f"unknown scaling strategy: {name!r} (expected one of: {known})"
        ) from None


def generate_sequence(
    strategy: str | ScalingStrategy,
    min_workers: int,
    max_workers: int,
    min_connections: int,
    max_connections: int,
    step_workers: int | None = None,
    step_connections: int | None = None,
    bands: int | None = None,
) -> list[ScalingBand]:
    """Generate the ordered band sequence for a scaling strategy.

    Args:
        strategy: Strategy name or ScalingStrategy
        min_workers: Lowest worker count
        max_workers: Highest worker count
        min_connections: Lowest connection count
        max_connections: Highest connection count
        step_workers: Worker step (linear, synchronized)
        step_connections: Connection step (linear)
        bands: Target band count; caps linear, sizes balanced and fibonacci

    Returns:
        Non-empty list of ScalingBand

    Raises:
        ConfigurationError: On an unknown strategy, non-positive bounds or
            an empty sequence (e.g. min greater than max)

    Example:
        >>> generate_sequence("linear", 2, 8, 4, 4, step_workers=2, step_connections=4)
        [ScalingBand(workers=2, connections=4), ScalingBand(workers=4, connections=4),
         ScalingBand(workers=6, connections=4), ScalingBand(workers=8, connections=4)]
    """
    resolved = parse_strategy(strategy)

    if min(min_workers, max_workers, min_connections, max_connections) < 1:
        raise ConfigurationError("worker and connection bounds must be at least 1")
    if (step_workers is not None and step_workers < 1) or (
        step_connections is not None and step_connections < 1
    ):
        raise ConfigurationError("step sizes must be at least 1")
    if bands is not None and bands < 1:
        raise ConfigurationError("bands must be at least 1")

    if min_workers > max_workers or min_connections > max_connections:
        sequence: list[ScalingBand] = []
    else:
        bounds = SequenceBounds(
            min_workers=min_workers,
            max_workers=max_workers,
            min_connections=min_connections,
            max_connections=max_connections,
            step_workers=step_workers,
            step_connections=step_connections,
            bands=bands,
        )
        sequence = _STRATEGIES[resolved](bounds)

    if not sequence:
        raise ConfigurationError(
            f"{resolved.value} strategy produced no bands for workers "
            f"{min_workers}..{max_workers}, connections {min_connections}..{max_connections}"
        )
    return sequence
